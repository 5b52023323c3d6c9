"""Metrics sink interface and the no-op default."""

from __future__ import annotations

from abc import ABC, abstractmethod


class MetricsSink(ABC):
    """Receives pipeline measurements.

    Implementations must be safe to call concurrently: one generator
    instance serves many requests at once.
    """

    @abstractmethod
    def record_inference(self, model: str, latency_seconds: float, success: bool) -> None:
        """Record one model predict call."""

    @abstractmethod
    def record_retrieval(self, latency_seconds: float, chunk_count: int) -> None:
        """Record one vector retrieval."""

    @abstractmethod
    def record_rerank(self, latency_seconds: float, applied: bool) -> None:
        """Record one rerank attempt (``applied=False`` when degraded)."""

    @abstractmethod
    def record_index(self, latency_seconds: float, chunk_count: int, success: bool) -> None:
        """Record indexing of one document."""

    @abstractmethod
    def record_cache(self, hit: bool) -> None:
        """Record a cache lookup."""

    @abstractmethod
    def record_report(self, task: str, latency_seconds: float, quality_score: float | None) -> None:
        """Record a finished report generation."""


class NoopMetrics(MetricsSink):
    """Discards everything. Used when no observability backend is wired in."""

    def record_inference(self, model: str, latency_seconds: float, success: bool) -> None:
        pass

    def record_retrieval(self, latency_seconds: float, chunk_count: int) -> None:
        pass

    def record_rerank(self, latency_seconds: float, applied: bool) -> None:
        pass

    def record_index(self, latency_seconds: float, chunk_count: int, success: bool) -> None:
        pass

    def record_cache(self, hit: bool) -> None:
        pass

    def record_report(self, task: str, latency_seconds: float, quality_score: float | None) -> None:
        pass
