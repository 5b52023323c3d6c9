"""Model backend interface and providers."""

from patentrag.llm.base import ModelBackend, PredictRequest, PredictResponse

__all__ = ["ModelBackend", "PredictRequest", "PredictResponse"]
