"""Data models for chunks."""

from __future__ import annotations

from dataclasses import dataclass, field

from patentrag.documents.schemas import SourceType


@dataclass(frozen=True)
class DocumentChunk:
    """A single indexable piece of a document.

    ``chunk_id`` is scoped to the document and stable across re-chunking of
    the same content. ``index`` is the position within one chunking pass.
    """

    chunk_id: str
    document_id: str
    content: str
    source_type: SourceType
    token_count: int
    index: int
    metadata: dict[str, str] = field(default_factory=dict)
