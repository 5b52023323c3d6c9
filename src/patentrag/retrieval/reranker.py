"""Cross-encoder reranking.

``Reranker`` is the interface the RAG engine depends on;
``CrossEncoderReranker`` implements it with sentence-transformers.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "cross-encoder/ms-marco-MiniLM-L-6-v2"


@dataclass(frozen=True)
class RerankResult:
    """Position of a document in the reranker input, and its new score."""

    index: int
    score: float


class Reranker(ABC):
    """Interface for query-document rerankers."""

    @abstractmethod
    async def rerank(self, query: str, documents: list[str], top_k: int) -> list[RerankResult]:
        """Score ``documents`` against ``query``.

        Args:
            query: The search query.
            documents: Candidate texts.
            top_k: Maximum number of results to return.

        Returns:
            ``RerankResult`` entries ordered by descending score, where
            ``index`` refers to the position in ``documents``.
        """


class CrossEncoderReranker(Reranker):
    """Cross-encoder reranker using sentence-transformers."""

    def __init__(self, model: str = DEFAULT_MODEL, device: str | None = None):
        try:
            from sentence_transformers import CrossEncoder
        except ImportError as exc:
            raise ImportError(
                "sentence-transformers required: "
                "pip install patent-strategy-rag[reranker]"
            ) from exc

        self._model: Any = CrossEncoder(model, device=device)
        self._model_name = model
        logger.info("Loaded reranker model: %s", model)

    async def rerank(self, query: str, documents: list[str], top_k: int) -> list[RerankResult]:
        if not documents:
            return []

        pairs = [(query, doc) for doc in documents]

        # CPU-bound model call runs off the event loop
        scores = await asyncio.to_thread(self._model.predict, pairs)

        ranked = sorted(
            (RerankResult(index=i, score=float(s)) for i, s in enumerate(scores)),
            key=lambda r: r.score,
            reverse=True,
        )

        logger.info(
            "Reranked %d → %d results (model=%s)",
            len(documents),
            min(top_k, len(ranked)),
            self._model_name,
        )

        return ranked[:top_k]
