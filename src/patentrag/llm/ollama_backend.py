"""Ollama model backend — local-first, no API keys.

Talks to ``/api/generate``. Request metadata may carry a ``system`` prompt;
everything else in ``input_data`` is sent as the prompt.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator

import httpx

from patentrag.llm.base import ModelBackend, PredictRequest, PredictResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaModelBackend(ModelBackend):
    """Generate text via a local Ollama server."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        temperature: float = 0.3,
        top_p: float = 0.9,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    def _payload(self, request: PredictRequest, stream: bool) -> dict:
        payload = {
            "model": request.model_name,
            "prompt": request.input_data.decode("utf-8"),
            "stream": stream,
            "options": {
                "temperature": self.temperature,
                "top_p": self.top_p,
                "num_predict": self.max_tokens,
            },
        }
        if request.metadata.get("system"):
            payload["system"] = request.metadata["system"]
        return payload

    async def predict(self, request: PredictRequest) -> PredictResponse:
        start = time.perf_counter()
        resp = await self._client.post("/api/generate", json=self._payload(request, stream=False))
        resp.raise_for_status()
        data = resp.json()

        outputs = {"text": data.get("response", "").encode("utf-8")}
        if "prompt_eval_count" in data:
            outputs["prompt_tokens"] = json.dumps(data["prompt_eval_count"]).encode()
        if "eval_count" in data:
            outputs["completion_tokens"] = json.dumps(data["eval_count"]).encode()

        return PredictResponse(
            outputs=outputs,
            model_name=request.model_name,
            inference_time_ms=(time.perf_counter() - start) * 1000,
        )

    async def predict_stream(self, request: PredictRequest) -> AsyncIterator[PredictResponse]:
        async with self._client.stream(
            "POST", "/api/generate", json=self._payload(request, stream=True)
        ) as resp:
            resp.raise_for_status()
            async for line in resp.aiter_lines():
                if not line.strip():
                    continue
                data = json.loads(line)
                fragment = data.get("response", "")
                if fragment:
                    yield PredictResponse(
                        outputs={"text": fragment.encode("utf-8")},
                        model_name=request.model_name,
                    )
                if data.get("done"):
                    break

    async def healthy(self) -> bool:
        try:
            resp = await self._client.get("/api/tags")
        except httpx.HTTPError as exc:
            logger.warning("Ollama health check failed: %s", exc)
            return False
        return resp.status_code == 200

    async def close(self) -> None:
        await self._client.aclose()
