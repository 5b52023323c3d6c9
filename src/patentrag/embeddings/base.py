"""Abstract base class for text embedders."""

from __future__ import annotations

from abc import ABC, abstractmethod


class TextEmbedder(ABC):
    """Interface for text embedding models."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text (typically a query).

        Args:
            text: The string to embed.

        Returns:
            Embedding vector.
        """

    @abstractmethod
    async def batch_embed(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts.

        Args:
            texts: Strings to embed.

        Returns:
            List of embedding vectors (same order as input).
        """

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimensionality."""

    @classmethod
    def provider_name(cls) -> str:
        """Return human-readable provider name."""
        return cls.__name__
