"""Shared fixtures for tests — synthetic documents and mock providers, no network calls."""

from __future__ import annotations

import hashlib
import json
import textwrap
from collections.abc import AsyncIterator

import numpy as np
import pytest

from patentrag.chunking.factory import clear_cache
from patentrag.documents.schemas import Document, SourceType
from patentrag.embeddings.base import TextEmbedder
from patentrag.llm.base import ModelBackend, PredictRequest, PredictResponse
from patentrag.retrieval.reranker import Reranker, RerankResult

DIM = 64

# ---------------------------------------------------------------------------
# Mock providers
# ---------------------------------------------------------------------------


class MockEmbedder(TextEmbedder):
    """Deterministic embeddings for testing."""

    def __init__(self, dim: int = DIM):
        self._dim = dim
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        return self._hash_embed(text)

    async def batch_embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        return [self._hash_embed(t) for t in texts]

    @property
    def dimension(self) -> int:
        return self._dim

    def _hash_embed(self, text: str) -> list[float]:
        h = hashlib.sha256(text.encode()).digest()
        vec = np.array([(h[i % len(h)] / 255.0) * 2 - 1 for i in range(self._dim)], dtype=np.float32)
        vec /= np.linalg.norm(vec)
        return vec.tolist()


class FailingEmbedder(MockEmbedder):
    """Embeds normally except for texts containing ``fail_on``."""

    def __init__(self, fail_on: str, dim: int = DIM):
        super().__init__(dim)
        self.fail_on = fail_on

    async def batch_embed(self, texts: list[str]) -> list[list[float]]:
        if any(self.fail_on in t for t in texts):
            raise RuntimeError("embedding service unavailable")
        return await super().batch_embed(texts)


class MockReranker(Reranker):
    """Scores documents by how many query words they contain."""

    def __init__(self):
        self.calls = 0

    async def rerank(self, query: str, documents: list[str], top_k: int) -> list[RerankResult]:
        self.calls += 1
        words = set(query.lower().split())
        scored = [
            RerankResult(index=i, score=float(sum(w in doc.lower() for w in words)))
            for i, doc in enumerate(documents)
        ]
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:top_k]


class FailingReranker(Reranker):
    async def rerank(self, query: str, documents: list[str], top_k: int) -> list[RerankResult]:
        raise RuntimeError("reranker model not loaded")


NARRATIVE_REPORT = textwrap.dedent("""\
    # FTO Analysis Report

    ## Executive Summary

    The compound faces moderate freedom-to-operate risk in the US, driven by
    US 10,123,456 B2 which claims the crystalline form.

    ## Patent Landscape

    Three families cover the scaffold. The closest is US 10,123,456 B2 and
    its Chinese counterpart CN 112345678 A.

    ## Risk Assessment

    - High likelihood of literal infringement of claim 1 (likelihood: 0.8, impact: 0.9)
    - Low risk from expired formulation patents

    ## Conclusions

    - Claim 1 of US 10,123,456 B2 reads on the crystalline form (confidence: 0.8)
    - Method-of-use claims are unlikely to be enforced

    ## Recommendations

    - High priority: Commission a formal non-infringement opinion. Rationale: claim 1 is broad. Timeline: 3 months
    - Design around the crystalline form
    - Monitor the CN family for grant
""")


class MockModelBackend(ModelBackend):
    """Canned model output; records the last request."""

    def __init__(
        self,
        text: str = NARRATIVE_REPORT,
        stream_chunks: list[str] | None = None,
        usage: dict[str, int] | None = None,
        fail: bool = False,
    ):
        self.text = text
        self.stream_chunks = stream_chunks if stream_chunks is not None else [
            "# FTO Analysis Report\n\n",
            "## Executive Summary\n\n",
            "Moderate risk ",
            "in the US.\n\n",
            "## Recommendations\n",
            "- File an opposition",
        ]
        self.usage = usage or {}
        self.fail = fail
        self.last_request: PredictRequest | None = None
        self.closed = False

    async def predict(self, request: PredictRequest) -> PredictResponse:
        self.last_request = request
        if self.fail:
            raise ConnectionError("model server unreachable")
        outputs = {"text": self.text.encode()}
        for key, value in self.usage.items():
            outputs[key] = json.dumps(value).encode()
        return PredictResponse(outputs=outputs, model_name=request.model_name)

    async def predict_stream(self, request: PredictRequest) -> AsyncIterator[PredictResponse]:
        self.last_request = request
        if self.fail:
            raise ConnectionError("model server unreachable")
        for piece in self.stream_chunks:
            yield PredictResponse(outputs={"text": piece.encode()}, model_name=request.model_name)

    async def healthy(self) -> bool:
        return not self.fail

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Synthetic document content
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_patent_text() -> str:
    return textwrap.dedent("""\
        Crystalline forms of a kinase inhibitor

        The present invention relates to crystalline polymorphs of compound A,
        a selective inhibitor of the EGFR kinase, and to pharmaceutical
        compositions comprising them.

        Form I shows characteristic XRPD peaks at 5.6, 11.2 and 16.8 degrees
        two-theta. Form I is stable at 40 degrees C and 75% relative humidity.

        What is claimed is:

        1. A crystalline form of compound A having XRPD peaks at 5.6 and 11.2 degrees two-theta.
        2. The crystalline form of claim 1, further having a peak at 16.8 degrees.
        3. A pharmaceutical composition comprising the crystalline form of claim 1.
    """)


@pytest.fixture
def patent_document(sample_patent_text: str) -> Document:
    return Document(
        document_id="US10123456B2",
        content=sample_patent_text,
        source_type=SourceType.PATENT,
        title="Crystalline forms of a kinase inhibitor",
        metadata={"patent_number": "US 10,123,456 B2", "jurisdiction": "US"},
    )


@pytest.fixture
def case_law_document() -> Document:
    return Document(
        document_id="case-001",
        content=(
            "The court held that the claims were anticipated by the prior art.\n\n"
            "Inherent anticipation requires that the missing feature is necessarily present."
        ),
        source_type=SourceType.CASE_LAW,
        title="Example Pharma v. Generic Co.",
        metadata={"case_name": "Example Pharma v. Generic Co.", "jurisdiction": "US"},
    )


@pytest.fixture
def embedder() -> MockEmbedder:
    return MockEmbedder()


@pytest.fixture(autouse=True)
def _reset_chunker_cache():
    clear_cache()
    yield
    clear_cache()
