"""Metrics sinks."""

from patentrag.metrics.base import MetricsSink, NoopMetrics

__all__ = ["MetricsSink", "NoopMetrics"]
