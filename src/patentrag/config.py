"""Application settings loaded from YAML.

``PATENTRAG_PROFILE`` selects a ``settings-{profile}.yaml`` file ahead of ``settings.yaml``.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Settings sections
# ---------------------------------------------------------------------------


class ModelSettings(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    provider: str = "ollama"
    model_id: str = "strategy-gpt"
    model_version: str = "v1.0.0"
    base_url: str = "http://localhost:11434"
    max_output_tokens: int = 4096
    temperature: float = 0.3
    top_p: float = 0.9
    timeout_seconds: float = 60.0
    streaming_enabled: bool = True

    @field_validator("temperature")
    @classmethod
    def _check_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError("temperature must be between 0 and 2.0")
        return v

    @field_validator("top_p")
    @classmethod
    def _check_top_p(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("top_p must be in (0, 1.0]")
        return v


class PromptSettings(BaseModel):
    max_context_tokens: int = 32768
    instruction_reserve_tokens: int = 300
    default_language: str = "en"
    template_version: str = "v1"

    @field_validator("max_context_tokens")
    @classmethod
    def _check_context(cls, v: int) -> int:
        if v <= 0 or v > 131072:
            raise ValueError("max_context_tokens must be in 1..131072")
        return v


class ChunkingSettings(BaseModel):
    chunk_size: int = 512
    chunk_overlap: int = 64


class EmbeddingSettings(BaseModel):
    provider: str = "ollama"
    model: str = "nomic-embed-text"
    dimension: int = 768


class RetrievalSettings(BaseModel):
    enabled: bool = True
    top_k: int = 10
    similarity_threshold: float = 0.70
    reranker_enabled: bool = True
    reranker_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"
    reranker_top_k: int = 5
    rerank_multiplier: int = 3
    index_concurrency: int = 8
    context_token_budget: int = 4096


class ReportSettings(BaseModel):
    citation_verify_timeout_seconds: float = 3.0
    citation_match_threshold: float = 0.7
    stream_flush_bytes: int = 1024
    stream_queue_size: int = 64
    quality_check: bool = True


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    model: ModelSettings = Field(default_factory=ModelSettings)
    prompt: PromptSettings = Field(default_factory=PromptSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)


def _find_settings_file() -> Path | None:
    """Walk up from cwd looking for settings.yaml."""
    profile = os.getenv("PATENTRAG_PROFILE", "")
    names = [f"settings-{profile}.yaml", "settings.yaml"] if profile else ["settings.yaml"]

    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        for name in names:
            candidate = parent / name
            if candidate.exists():
                return candidate
    return None


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from YAML file, falling back to defaults."""
    path = Path(path) if path is not None else _find_settings_file()
    if path is None:
        return Settings()

    with open(path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    return Settings(**raw)
