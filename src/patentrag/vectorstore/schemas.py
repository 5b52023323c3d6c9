"""Data models for vector store operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any


@dataclass
class VectorRecord:
    """A chunk embedding with its payload, ready for storage.

    ``metadata`` always carries ``document_id`` and ``content`` so hits can
    be mapped back to chunk text without a second lookup.
    """

    id: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchHit:
    """A single search result from the vector store."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _any_in(value: Any, allowed: list[str]) -> bool:
    """Case-insensitive membership; comma-separated values match on any item."""
    if value is None:
        return False
    items = [v.strip().lower() for v in str(value).split(",")]
    wanted = {a.lower() for a in allowed}
    return any(item in wanted for item in items)


def _classification_match(value: Any, prefixes: list[str]) -> bool:
    if value is None:
        return False
    items = [v.strip().upper() for v in str(value).split(",")]
    return any(item.startswith(p.upper()) for item in items for p in prefixes)


def matches_filters(metadata: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    """Check record metadata against a flat filter dict (AND across keys).

    Recognised keys: ``date_from``/``date_to`` (against ``publication_date``),
    ``jurisdictions``, ``patent_classifications`` (prefix match),
    ``document_types``, ``assignees``, ``source_types``,
    ``exclude_doc_ids``. Unknown keys are exact-match equality filters.
    """
    if not filters:
        return True

    for key, expected in filters.items():
        if key in ("date_from", "date_to"):
            bound = _parse_date(expected)
            published = _parse_date(metadata.get("publication_date"))
            if bound is None:
                continue
            if published is None:
                return False
            if key == "date_from" and published < bound:
                return False
            if key == "date_to" and published > bound:
                return False
        elif key == "jurisdictions":
            if not _any_in(metadata.get("jurisdiction"), expected):
                return False
        elif key == "patent_classifications":
            if not _classification_match(metadata.get("classification"), expected):
                return False
        elif key == "document_types":
            if not _any_in(metadata.get("document_type"), expected):
                return False
        elif key == "assignees":
            if not _any_in(metadata.get("assignee"), expected):
                return False
        elif key == "source_types":
            if not _any_in(metadata.get("source_type"), expected):
                return False
        elif key == "exclude_doc_ids":
            if metadata.get("document_id") in set(expected):
                return False
        elif metadata.get(key) != expected:
            return False
    return True
