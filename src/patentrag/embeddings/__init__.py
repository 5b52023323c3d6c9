"""Text embedder interface and providers."""

from patentrag.embeddings.base import TextEmbedder

__all__ = ["TextEmbedder"]
