"""Abstract base class for vector stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from patentrag.vectorstore.schemas import SearchHit, VectorRecord


class VectorStore(ABC):
    """Interface for vector store backends.

    All operations are coroutines; implementations backed by a network
    service must honour task cancellation.
    """

    @abstractmethod
    async def search(
        self,
        vector: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Search for similar records.

        Args:
            vector: The query vector.
            top_k: Maximum results to return.
            filters: Flat metadata filter dict
                (see :func:`~patentrag.vectorstore.schemas.matches_filters`).

        Returns:
            List of ``SearchHit`` sorted by score (highest first).
        """

    @abstractmethod
    async def insert(self, record: VectorRecord) -> None:
        """Insert or replace a single record."""

    @abstractmethod
    async def batch_insert(self, records: list[VectorRecord]) -> int:
        """Insert or replace records.

        Returns:
            Number of records written.
        """

    @abstractmethod
    async def delete(self, document_id: str) -> int:
        """Delete every record belonging to ``document_id``.

        Returns:
            Number of records deleted.
        """

    @classmethod
    def store_name(cls) -> str:
        """Return human-readable store name."""
        return cls.__name__
