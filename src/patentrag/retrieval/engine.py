"""RAG engine — index documents, retrieve, rerank and build model context."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any

from patentrag.chunking.base import BaseChunker
from patentrag.chunking.factory import get_chunker
from patentrag.config import ChunkingSettings, RetrievalSettings
from patentrag.documents.schemas import Document, SourceType
from patentrag.embeddings.base import TextEmbedder
from patentrag.errors import BatchIndexError, InvalidInputError, PatentRAGError
from patentrag.metrics.base import MetricsSink, NoopMetrics
from patentrag.retrieval.context import build_context
from patentrag.retrieval.reranker import Reranker
from patentrag.retrieval.schemas import RAGQuery, RAGResult, RetrievedChunk
from patentrag.tokens import estimate_tokens
from patentrag.vectorstore.base import VectorStore
from patentrag.vectorstore.schemas import SearchHit, VectorRecord

logger = logging.getLogger(__name__)

# Payload keys that are not copied onto RetrievedChunk.metadata
_PAYLOAD_KEYS = {"content"}


def _source_type(value: Any) -> SourceType:
    try:
        return SourceType(value)
    except ValueError:
        return SourceType.OTHER


def _hit_to_chunk(hit: SearchHit) -> RetrievedChunk:
    meta = hit.metadata
    content = str(meta.get("content", ""))
    return RetrievedChunk(
        chunk_id=str(meta.get("chunk_id", hit.id)),
        document_id=str(meta.get("document_id", "")),
        content=content,
        source_type=_source_type(meta.get("source_type", SourceType.OTHER)),
        score=hit.score,
        token_count=estimate_tokens(content),
        source=str(meta.get("source", "")),
        metadata={k: v for k, v in meta.items() if k not in _PAYLOAD_KEYS},
    )


def build_store_filters(query: RAGQuery) -> dict[str, Any]:
    """Flatten a query's structured filters and source types for the vector store."""
    filters = query.filters.to_dict() if query.filters is not None else {}
    if query.source_types:
        filters["source_types"] = [str(st) for st in query.source_types]
    return filters


class RAGEngine:
    """Orchestrates chunk → embed → store on write and embed → search → rerank on read."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: TextEmbedder,
        reranker: Reranker | None = None,
        settings: RetrievalSettings | None = None,
        chunking: ChunkingSettings | None = None,
        metrics: MetricsSink | None = None,
    ):
        if vector_store is None:
            raise InvalidInputError("vector_store is required")
        if embedder is None:
            raise InvalidInputError("embedder is required")

        self.vector_store = vector_store
        self.embedder = embedder
        self.reranker = reranker
        self.settings = settings or RetrievalSettings()
        self.chunking = chunking or ChunkingSettings()
        self.metrics = metrics or NoopMetrics()
        self._chunkers: dict[SourceType, BaseChunker] = {}

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def retrieve(self, query: RAGQuery) -> RAGResult:
        """Embed (if needed) → search → threshold → source-type filter.

        Args:
            query: The retrieval request.

        Returns:
            A ``RAGResult``; empty when the query carries neither text nor
            a vector.
        """
        if query is None:
            raise InvalidInputError("query is required")
        if not query.query_text.strip() and not query.query_vector:
            return RAGResult()

        start = time.perf_counter()

        vector = query.query_vector or await self.embedder.embed(query.query_text)
        top_k = query.top_k if query.top_k and query.top_k > 0 else self.settings.top_k
        threshold = (
            self.settings.similarity_threshold
            if query.similarity_threshold is None
            else query.similarity_threshold
        )

        filters = build_store_filters(query)
        hits = await self.vector_store.search(vector, top_k=top_k, filters=filters or None)

        wanted = set(query.source_types)
        chunks: list[RetrievedChunk] = []
        for hit in hits:
            if hit.score < threshold:
                continue
            chunk = _hit_to_chunk(hit)
            if wanted and chunk.source_type not in wanted:
                continue
            chunks.append(chunk)

        elapsed = time.perf_counter() - start
        self.metrics.record_retrieval(elapsed, len(chunks))
        logger.info(
            "Retrieved %d chunks (hits=%d, top_k=%d, threshold=%.2f)",
            len(chunks), len(hits), top_k, threshold,
        )

        return RAGResult(
            chunks=chunks,
            total_found=len(hits),
            query_latency_ms=elapsed * 1000,
        )

    async def retrieve_and_rerank(self, query: RAGQuery) -> RAGResult:
        """Over-fetch ``top_k × multiplier`` candidates and rerank them.

        Reranker absence or failure never fails the call: the candidates
        are cut back to the original ``top_k`` in vector order and
        ``reranker_applied`` is False.
        """
        if query is None:
            raise InvalidInputError("query is required")

        original_top_k = query.top_k if query.top_k and query.top_k > 0 else self.settings.top_k
        multiplier = self.settings.rerank_multiplier if self.settings.rerank_multiplier > 0 else 3
        result = await self.retrieve(dataclasses.replace(query, top_k=original_top_k * multiplier))
        if not result.chunks:
            return result

        if self.reranker is None or not self.settings.reranker_enabled or not query.query_text.strip():
            if self.reranker is None and self.settings.reranker_enabled:
                logger.warning("Reranker not configured, keeping top %d vector hits", original_top_k)
            else:
                logger.debug("Reranking skipped, keeping top %d vector hits", original_top_k)
            result.chunks = result.chunks[:original_top_k]
            result.reranker_applied = False
            return result

        start = time.perf_counter()
        candidates = result.chunks
        try:
            ranked = await self.reranker.rerank(
                query.query_text,
                [c.content for c in candidates],
                self.settings.reranker_top_k,
            )
        except Exception as exc:  # noqa: BLE001 - reranker failure degrades to vector order
            self.metrics.record_rerank(time.perf_counter() - start, applied=False)
            logger.warning(
                "Reranker failed (%s), falling back to vector order for %d candidates",
                exc, len(candidates),
            )
            result.chunks = candidates[:original_top_k]
            result.reranker_applied = False
            return result

        reranked: list[RetrievedChunk] = []
        seen: set[int] = set()
        for r in ranked:
            if 0 <= r.index < len(candidates) and r.index not in seen:
                seen.add(r.index)
                reranked.append(dataclasses.replace(candidates[r.index], reranker_score=r.score))
        reranked.sort(key=lambda c: c.reranker_score, reverse=True)

        self.metrics.record_rerank(time.perf_counter() - start, applied=True)
        logger.info("Reranked %d → %d chunks", len(candidates), min(len(reranked), self.settings.reranker_top_k))

        result.chunks = reranked[: self.settings.reranker_top_k]
        result.reranker_applied = True
        return result

    def build_context(self, result: RAGResult, budget: int | None = None) -> str:
        """Pack retrieved chunks into a model context string within ``budget`` tokens."""
        if result is None:
            return ""
        if budget is None:
            budget = self.settings.context_token_budget
        return build_context(result.chunks, budget)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    async def index_document(self, document: Document) -> int:
        """Chunk → batch-embed → batch-insert one document.

        Returns:
            Number of chunks stored.
        """
        if document is None:
            raise InvalidInputError("document is required")
        if not document.document_id:
            raise InvalidInputError("document_id is required")
        if not document.content or not document.content.strip():
            raise InvalidInputError(f"document {document.document_id} has no content")

        start = time.perf_counter()
        try:
            chunks = self._chunker_for(document.source_type).chunk(document)
            if not chunks:
                self.metrics.record_index(time.perf_counter() - start, 0, success=True)
                return 0

            vectors = await self.embedder.batch_embed([c.content for c in chunks])
            if len(vectors) != len(chunks):
                raise PatentRAGError(
                    f"embedder returned {len(vectors)} vectors for {len(chunks)} chunks"
                )

            source = document.title or document.document_id
            records = [
                VectorRecord(
                    id=chunk.chunk_id,
                    vector=vector,
                    metadata={
                        **chunk.metadata,
                        "chunk_id": chunk.chunk_id,
                        "document_id": chunk.document_id,
                        "content": chunk.content,
                        "source_type": str(chunk.source_type),
                        "source": source,
                        "title": document.title,
                        "language": document.language,
                        "chunk_index": chunk.index,
                    },
                )
                for chunk, vector in zip(chunks, vectors, strict=True)
            ]
            await self.vector_store.batch_insert(records)
        except Exception:
            self.metrics.record_index(time.perf_counter() - start, 0, success=False)
            raise

        self.metrics.record_index(time.perf_counter() - start, len(chunks), success=True)
        logger.info("Indexed %s: %d chunks", document.document_id, len(chunks))
        return len(chunks)

    async def index_batch(self, documents: list[Document]) -> int:
        """Index documents concurrently, bounded by ``index_concurrency``.

        Every document is attempted; successes are not rolled back.

        Returns:
            Total chunks stored.

        Raises:
            BatchIndexError: one or more documents failed (``"N/M failed: ..."``).
        """
        if not documents:
            return 0

        sem = asyncio.Semaphore(self.settings.index_concurrency if self.settings.index_concurrency > 0 else 8)

        async def _index_one(doc: Document) -> int:
            async with sem:
                return await self.index_document(doc)

        results = await asyncio.gather(
            *(_index_one(doc) for doc in documents),
            return_exceptions=True,
        )

        total_chunks = 0
        failures: list[tuple[str, BaseException]] = []
        for doc, outcome in zip(documents, results, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                failures.append((getattr(doc, "document_id", None) or "<missing>", outcome))
            else:
                total_chunks += outcome

        if failures:
            err = BatchIndexError(failures, len(documents))
            logger.warning("Batch index partial failure: %s", err)
            raise err

        logger.info("Indexed batch of %d documents: %d chunks", len(documents), total_chunks)
        return total_chunks

    async def delete_document(self, document_id: str) -> int:
        """Remove every chunk of ``document_id`` from the store."""
        if not document_id:
            raise InvalidInputError("document_id is required")
        return await self.vector_store.delete(document_id)

    def _chunker_for(self, source_type: SourceType) -> BaseChunker:
        if source_type not in self._chunkers:
            self._chunkers[source_type] = get_chunker(
                source_type,
                chunk_size=self.chunking.chunk_size,
                chunk_overlap=self.chunking.chunk_overlap,
            )
        return self._chunkers[source_type]
