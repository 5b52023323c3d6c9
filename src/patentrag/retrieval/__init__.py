"""Retrieval — similarity search, reranking and context packing."""

from patentrag.retrieval.engine import RAGEngine
from patentrag.retrieval.reranker import Reranker, RerankResult
from patentrag.retrieval.schemas import DateRange, RAGFilters, RAGQuery, RAGResult, RetrievedChunk

__all__ = [
    "DateRange",
    "RAGEngine",
    "RAGFilters",
    "RAGQuery",
    "RAGResult",
    "RerankResult",
    "Reranker",
    "RetrievedChunk",
]
