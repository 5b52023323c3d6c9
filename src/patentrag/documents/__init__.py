"""Source document models."""

from patentrag.documents.schemas import Document, SourceType

__all__ = ["Document", "SourceType"]
