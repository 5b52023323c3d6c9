"""Abstract base class for all chunkers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from patentrag.chunking.schemas import DocumentChunk
from patentrag.documents.schemas import Document


class BaseChunker(ABC):
    """Interface for document chunking strategies."""

    @abstractmethod
    def chunk(self, document: Document) -> list[DocumentChunk]:
        """Split a document into chunks.

        Args:
            document: The document to split.

        Returns:
            List of ``DocumentChunk`` objects with contiguous ``index``
            values. Empty (never ``None``) for empty content.
        """

    @classmethod
    def strategy_name(cls) -> str:
        """Return human-readable strategy name."""
        return cls.__name__
