"""Tests for the Ollama model backend and embedder against a mocked HTTP transport."""

from __future__ import annotations

import json

import httpx
import pytest

from patentrag.embeddings.ollama_embedder import OllamaEmbedder
from patentrag.llm.base import PredictRequest
from patentrag.llm.ollama_backend import OllamaModelBackend


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="http://ollama.test", transport=httpx.MockTransport(handler))


def _request(system: str = "You are a patent attorney.") -> PredictRequest:
    return PredictRequest(
        model_name="strategy-gpt",
        input_data="Assess FTO for compound A.".encode(),
        metadata={"system": system, "task": "fto"},
    )


# ---------------------------------------------------------------------------
# OllamaModelBackend
# ---------------------------------------------------------------------------


class TestOllamaModelBackend:
    @pytest.mark.asyncio
    async def test_predict(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "## Summary\nLow risk.", "prompt_eval_count": 42, "eval_count": 7})

        backend = OllamaModelBackend(temperature=0.1, max_tokens=256, client=_client(handler))
        response = await backend.predict(_request())

        assert seen["path"] == "/api/generate"
        assert seen["body"]["model"] == "strategy-gpt"
        assert seen["body"]["prompt"] == "Assess FTO for compound A."
        assert seen["body"]["system"] == "You are a patent attorney."
        assert seen["body"]["stream"] is False
        assert seen["body"]["options"] == {"temperature": 0.1, "top_p": 0.9, "num_predict": 256}

        assert response.outputs["text"] == "## Summary\nLow risk.".encode()
        assert response.outputs["prompt_tokens"] == b"42"
        assert response.outputs["completion_tokens"] == b"7"
        assert response.model_name == "strategy-gpt"
        await backend.close()

    @pytest.mark.asyncio
    async def test_system_prompt_omitted_when_empty(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"response": "ok"})

        backend = OllamaModelBackend(client=_client(handler))
        response = await backend.predict(_request(system=""))
        assert "system" not in bodies[0]
        assert "prompt_tokens" not in response.outputs

    @pytest.mark.asyncio
    async def test_predict_http_error(self):
        backend = OllamaModelBackend(client=_client(lambda r: httpx.Response(500, text="model not loaded")))
        with pytest.raises(httpx.HTTPStatusError):
            await backend.predict(_request())

    @pytest.mark.asyncio
    async def test_predict_stream(self):
        lines = [
            {"response": "## Sum", "done": False},
            {"response": "mary\n", "done": False},
            {"response": "", "done": False},
            {"response": "Low risk.", "done": True},
            {"response": "ignored", "done": False},
        ]
        body = "\n".join(json.dumps(line) for line in lines) + "\n"

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=body.encode())

        backend = OllamaModelBackend(client=_client(handler))
        fragments = [r.outputs["text"].decode() async for r in backend.predict_stream(_request())]
        assert fragments == ["## Sum", "mary\n", "Low risk."]

    @pytest.mark.asyncio
    async def test_healthy(self):
        ok = OllamaModelBackend(client=_client(lambda r: httpx.Response(200, json={"models": []})))
        assert await ok.healthy()

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        down = OllamaModelBackend(client=_client(refuse))
        assert not await down.healthy()


# ---------------------------------------------------------------------------
# OllamaEmbedder
# ---------------------------------------------------------------------------


class TestOllamaEmbedder:
    @pytest.mark.asyncio
    async def test_embed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/embeddings"
            assert json.loads(request.content) == {"model": "nomic-embed-text", "prompt": "claim 1"}
            return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]})

        embedder = OllamaEmbedder(dimension=3, client=_client(handler))
        assert await embedder.embed("claim 1") == [0.1, 0.2, 0.3]
        assert embedder.dimension == 3
        await embedder.aclose()

    @pytest.mark.asyncio
    async def test_batch_embed(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            texts = json.loads(request.content)["input"]
            return httpx.Response(200, json={"embeddings": [[float(len(t))] for t in texts]})

        embedder = OllamaEmbedder(client=_client(handler))
        assert await embedder.batch_embed(["a", "bbb"]) == [[1.0], [3.0]]
        assert paths == ["/api/embed"]

    @pytest.mark.asyncio
    async def test_batch_falls_back_to_sequential(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/api/embed":
                return httpx.Response(404, text="not found")
            prompt = json.loads(request.content)["prompt"]
            return httpx.Response(200, json={"embedding": [float(len(prompt))]})

        embedder = OllamaEmbedder(client=_client(handler))
        assert await embedder.batch_embed(["ab", "c"]) == [[2.0], [1.0]]
        assert paths == ["/api/embed", "/api/embeddings", "/api/embeddings"]

    @pytest.mark.asyncio
    async def test_batch_embed_empty(self):
        embedder = OllamaEmbedder(client=_client(lambda r: httpx.Response(500)))
        assert await embedder.batch_embed([]) == []
