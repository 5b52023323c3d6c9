"""Data models for retrieval operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from patentrag.documents.schemas import SourceType


@dataclass
class DateRange:
    """Inclusive publication-date window; either end may be open."""

    start: date | None = None
    end: date | None = None


@dataclass
class RAGFilters:
    """Structured filters translated into vector-store filter keys."""

    date_range: DateRange | None = None
    jurisdictions: list[str] = field(default_factory=list)
    patent_classifications: list[str] = field(default_factory=list)
    document_types: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    exclude_document_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a flat dict for the vector store."""
        d: dict[str, Any] = {}
        if self.date_range is not None:
            if self.date_range.start is not None:
                d["date_from"] = self.date_range.start.isoformat()
            if self.date_range.end is not None:
                d["date_to"] = self.date_range.end.isoformat()
        if self.jurisdictions:
            d["jurisdictions"] = list(self.jurisdictions)
        if self.patent_classifications:
            d["patent_classifications"] = list(self.patent_classifications)
        if self.document_types:
            d["document_types"] = list(self.document_types)
        if self.assignees:
            d["assignees"] = list(self.assignees)
        if self.exclude_document_ids:
            d["exclude_doc_ids"] = list(self.exclude_document_ids)
        return d


@dataclass
class RAGQuery:
    """One retrieval request.

    ``top_k`` falls back to the configured default when ``None`` or not
    positive; ``similarity_threshold`` when ``None``.
    """

    query_text: str = ""
    query_vector: list[float] | None = None
    top_k: int | None = None
    similarity_threshold: float | None = None
    filters: RAGFilters | None = None
    source_types: list[SourceType] = field(default_factory=list)


@dataclass(frozen=True)
class RetrievedChunk:
    """A chunk returned by retrieval, with its scores."""

    chunk_id: str
    document_id: str
    content: str
    source_type: SourceType
    score: float
    token_count: int = 0
    source: str = ""
    reranker_score: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def effective_score(self) -> float:
        """Reranker score if present, else similarity score."""
        return self.reranker_score if self.reranker_score is not None else self.score


@dataclass
class RAGResult:
    """Result of a retrieval operation."""

    chunks: list[RetrievedChunk] = field(default_factory=list)
    total_found: int = 0
    query_latency_ms: float = 0.0
    reranker_applied: bool = False
