"""Prometheus-backed metrics sink.

Requires the ``metrics`` extra (``prometheus-client``). prometheus_client
metric objects are thread-safe, so one instance can be shared by every
concurrent report generation.
"""

from __future__ import annotations

from typing import Any

from patentrag.metrics.base import MetricsSink


def _clamp_score(score: float) -> float:
    if score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score


class PrometheusMetrics(MetricsSink):
    """Histograms and counters for the retrieval and generation stages."""

    def __init__(self, namespace: str = "patentrag", registry: Any = None):
        try:
            from prometheus_client import REGISTRY, Counter, Histogram
        except ImportError as exc:
            raise ImportError(
                "prometheus-client required: pip install patent-strategy-rag[metrics]"
            ) from exc

        registry = registry if registry is not None else REGISTRY

        self.inference_latency = Histogram(
            f"{namespace}_inference_duration_seconds",
            "Time spent in model predict calls.",
            ["model", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=registry,
        )
        self.retrieval_latency = Histogram(
            f"{namespace}_retrieval_duration_seconds",
            "Time spent retrieving context chunks.",
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
            registry=registry,
        )
        self.retrieved_chunk_count = Histogram(
            f"{namespace}_retrieved_chunk_count",
            "Number of chunks returned by retrieval.",
            buckets=(0, 1, 2, 3, 5, 8, 13, 21),
            registry=registry,
        )
        self.rerank_latency = Histogram(
            f"{namespace}_rerank_duration_seconds",
            "Time spent in the cross-encoder reranker.",
            ["applied"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0),
            registry=registry,
        )
        self.index_latency = Histogram(
            f"{namespace}_index_duration_seconds",
            "Time spent chunking, embedding and storing one document.",
            ["status"],
            buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=registry,
        )
        self.index_chunks = Histogram(
            f"{namespace}_index_chunk_count",
            "Chunks produced per indexed document.",
            buckets=(0, 1, 5, 10, 20, 40, 80, 160),
            registry=registry,
        )
        self.cache_lookups = Counter(
            f"{namespace}_cache_lookups_total",
            "Cache lookups by outcome.",
            ["outcome"],
            registry=registry,
        )
        self.report_latency = Histogram(
            f"{namespace}_report_duration_seconds",
            "End-to-end report generation time.",
            ["task"],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=registry,
        )
        self.report_quality = Histogram(
            f"{namespace}_report_quality_score",
            "Composite quality score of validated reports.",
            ["task"],
            buckets=(0.0, 0.25, 0.5, 0.75, 1.0),
            registry=registry,
        )

    def record_inference(self, model: str, latency_seconds: float, success: bool) -> None:
        status = "ok" if success else "error"
        self.inference_latency.labels(model=model, status=status).observe(latency_seconds)

    def record_retrieval(self, latency_seconds: float, chunk_count: int) -> None:
        self.retrieval_latency.observe(latency_seconds)
        self.retrieved_chunk_count.observe(chunk_count)

    def record_rerank(self, latency_seconds: float, applied: bool) -> None:
        self.rerank_latency.labels(applied=str(applied).lower()).observe(latency_seconds)

    def record_index(self, latency_seconds: float, chunk_count: int, success: bool) -> None:
        self.index_latency.labels(status="ok" if success else "error").observe(latency_seconds)
        if success:
            self.index_chunks.observe(chunk_count)

    def record_cache(self, hit: bool) -> None:
        self.cache_lookups.labels(outcome="hit" if hit else "miss").inc()

    def record_report(self, task: str, latency_seconds: float, quality_score: float | None) -> None:
        self.report_latency.labels(task=task).observe(latency_seconds)
        if quality_score is not None:
            self.report_quality.labels(task=task).observe(_clamp_score(quality_score))
