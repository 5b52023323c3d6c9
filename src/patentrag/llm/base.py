"""Model inference backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field


@dataclass
class PredictRequest:
    """One inference call.

    Attributes:
        model_name: Backend-specific model identifier.
        input_data: Raw prompt bytes (UTF-8 text or JSON, per ``input_format``).
        input_format: Tag describing ``input_data``, e.g. ``"text"`` or ``"chat"``.
        metadata: String metadata (task, request_id, stream flag, ...).
    """

    model_name: str
    input_data: bytes
    input_format: str = "text"
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class PredictResponse:
    """Backend output as a string-keyed byte map.

    Model text lives under ``"text"`` (or ``"output"``). Token usage, when
    reported, lives under ``"prompt_tokens"``/``"completion_tokens"``/
    ``"total_tokens"`` as JSON-encoded integers.
    """

    outputs: dict[str, bytes] = field(default_factory=dict)
    model_name: str = ""
    inference_time_ms: float = 0.0


class ModelBackend(ABC):
    """Interface for LLM inference backends."""

    @abstractmethod
    async def predict(self, request: PredictRequest) -> PredictResponse:
        """Run a single-shot prediction."""

    @abstractmethod
    def predict_stream(self, request: PredictRequest) -> AsyncIterator[PredictResponse]:
        """Stream partial responses; each carries a text fragment under ``"text"``."""

    @abstractmethod
    async def healthy(self) -> bool:
        """Return True when the backend can serve requests."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections and other resources."""

    @classmethod
    def backend_name(cls) -> str:
        """Return human-readable backend name."""
        return cls.__name__
