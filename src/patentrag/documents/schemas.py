"""Data models for source documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class SourceType(StrEnum):
    """Kinds of material the knowledge base indexes."""

    PATENT = "patent"
    CASE_LAW = "case_law"
    EXAMINATION_GUIDELINE = "examination_guideline"
    SCIENTIFIC_PAPER = "scientific_paper"
    REGULATORY = "regulatory"
    OTHER = "other"


@dataclass(frozen=True)
class Document:
    """A caller-owned unit of text to be chunked and indexed.

    Attributes:
        document_id: Stable identifier, also the prefix of every chunk id.
        title: Human-readable title.
        content: Full text.
        source_type: Drives chunker selection and source annotations.
        metadata: Free-form string metadata (patent_number, jurisdiction,
            assignee, publication_date, ...), copied onto each chunk.
        language: ISO 639-1 code of the content.
    """

    document_id: str
    content: str
    source_type: SourceType = SourceType.OTHER
    title: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    language: str = "en"
