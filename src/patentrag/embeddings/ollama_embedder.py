"""Ollama embedder — local-first, no API keys needed.

Uses the Ollama REST API (http://localhost:11434) with models like
``nomic-embed-text``, ``bge-m3``, etc.
"""

from __future__ import annotations

import logging

import httpx

from patentrag.embeddings.base import TextEmbedder

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "nomic-embed-text"
DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_DIM = 768


class OllamaEmbedder(TextEmbedder):
    """Embed text via a local Ollama server."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        dimension: int = DEFAULT_DIM,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._dimension = dimension
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        resp = await self._client.post(
            "/api/embeddings",
            json={"model": self.model, "prompt": text},
        )
        resp.raise_for_status()
        return resp.json()["embedding"]

    async def batch_embed(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts with one call to ``/api/embed``.

        Falls back to sequential calls for Ollama servers without batch
        support.
        """
        if not texts:
            return []

        try:
            resp = await self._client.post(
                "/api/embed",
                json={"model": self.model, "input": texts},
            )
            resp.raise_for_status()
            data = resp.json()
            if "embeddings" in data:
                return data["embeddings"]
        except httpx.HTTPStatusError as exc:
            logger.debug("Batch embed unavailable (%s), falling back to sequential", exc)

        return [await self.embed(text) for text in texts]

    @property
    def dimension(self) -> int:
        return self._dimension

    async def aclose(self) -> None:
        await self._client.aclose()
