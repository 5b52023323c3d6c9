"""Vector store interface and in-memory implementation."""

from patentrag.vectorstore.base import VectorStore
from patentrag.vectorstore.memory_store import InMemoryVectorStore
from patentrag.vectorstore.schemas import SearchHit, VectorRecord

__all__ = ["InMemoryVectorStore", "SearchHit", "VectorRecord", "VectorStore"]
