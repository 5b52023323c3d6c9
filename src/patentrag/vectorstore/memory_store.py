"""In-memory vector store — numpy cosine similarity, zero infrastructure.

Holds a normalized matrix of vectors alongside a parallel list of record
payloads. Suitable for tests, notebooks and small knowledge bases.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from patentrag.vectorstore.base import VectorStore
from patentrag.vectorstore.schemas import SearchHit, VectorRecord, matches_filters

logger = logging.getLogger(__name__)


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine search with metadata filtering."""

    def __init__(self, dimension: int | None = None):
        self._dimension = dimension
        self._ids: list[str] = []
        self._metadata: list[dict[str, Any]] = []
        self._matrix = np.zeros((0, dimension or 0), dtype=np.float32)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(
        self,
        vector: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        if not self._ids or top_k <= 0:
            return []

        query = self._normalize(np.asarray([vector], dtype=np.float32))[0]
        scores = self._matrix @ query
        order = np.argsort(-scores, kind="stable")

        hits: list[SearchHit] = []
        for idx in order:
            meta = self._metadata[int(idx)]
            if not matches_filters(meta, filters):
                continue
            hits.append(SearchHit(id=self._ids[int(idx)], score=float(scores[idx]), metadata=dict(meta)))
            if len(hits) >= top_k:
                break
        return hits

    async def insert(self, record: VectorRecord) -> None:
        await self.batch_insert([record])

    async def batch_insert(self, records: list[VectorRecord]) -> int:
        if not records:
            return 0

        vectors = np.asarray([r.vector for r in records], dtype=np.float32)
        if self._dimension is None:
            self._dimension = vectors.shape[1]
            self._matrix = np.zeros((0, self._dimension), dtype=np.float32)
        if vectors.shape[1] != self._dimension:
            raise ValueError(
                f"vector dimension {vectors.shape[1]} does not match store dimension {self._dimension}"
            )

        # Replace existing ids in place
        self._remove({r.id for r in records})

        self._matrix = np.vstack([self._matrix, self._normalize(vectors)])
        self._ids.extend(r.id for r in records)
        self._metadata.extend(dict(r.metadata) for r in records)

        logger.debug("InMemoryVectorStore added %d records (total: %d)", len(records), self.count())
        return len(records)

    async def delete(self, document_id: str) -> int:
        ids = {
            rid for rid, meta in zip(self._ids, self._metadata, strict=True)
            if meta.get("document_id") == document_id
        }
        removed = self._remove(ids)
        logger.info("InMemoryVectorStore deleted %d records for %s", removed, document_id)
        return removed

    def count(self) -> int:
        return len(self._ids)

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _remove(self, ids: set[str]) -> int:
        if not ids:
            return 0
        keep = [i for i, rid in enumerate(self._ids) if rid not in ids]
        removed = len(self._ids) - len(keep)
        if removed:
            self._matrix = self._matrix[keep]
            self._ids = [self._ids[i] for i in keep]
            self._metadata = [self._metadata[i] for i in keep]
        return removed

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return vectors / norms
