"""Tests for settings defaults, validation and YAML loading."""

from __future__ import annotations

import pytest
import yaml
from pydantic import ValidationError

from patentrag.config import ModelSettings, PromptSettings, Settings, load_settings


class TestDefaults:
    def test_defaults(self):
        s = Settings()
        assert s.model.model_id == "strategy-gpt"
        assert s.prompt.max_context_tokens == 32768
        assert s.retrieval.top_k == 10
        assert s.retrieval.similarity_threshold == pytest.approx(0.7)
        assert s.retrieval.reranker_top_k == 5
        assert s.report.citation_verify_timeout_seconds == 3.0
        assert s.report.stream_flush_bytes == 1024

    @pytest.mark.parametrize("value", [-0.1, 2.5])
    def test_temperature_range(self, value: float):
        with pytest.raises(ValidationError):
            ModelSettings(temperature=value)

    @pytest.mark.parametrize("value", [0.0, 1.5])
    def test_top_p_range(self, value: float):
        with pytest.raises(ValidationError):
            ModelSettings(top_p=value)

    @pytest.mark.parametrize("value", [0, 131073])
    def test_context_window_range(self, value: int):
        with pytest.raises(ValidationError):
            PromptSettings(max_context_tokens=value)


class TestLoadSettings:
    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({
            "model": {"model_id": "local-llm", "temperature": 0.0},
            "retrieval": {"top_k": 4, "reranker_enabled": False},
        }))
        s = load_settings(path)
        assert s.model.model_id == "local-llm"
        assert s.model.temperature == 0.0
        assert s.retrieval.top_k == 4
        assert not s.retrieval.reranker_enabled
        assert s.prompt.default_language == "en"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert load_settings(path) == Settings()

    def test_invalid_values_rejected(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump({"model": {"top_p": 3}}))
        with pytest.raises(ValidationError):
            load_settings(path)

    def test_found_in_parent_directory(self, tmp_path, monkeypatch):
        (tmp_path / "settings.yaml").write_text(yaml.safe_dump({"retrieval": {"top_k": 7}}))
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        monkeypatch.delenv("PATENTRAG_PROFILE", raising=False)
        assert load_settings().retrieval.top_k == 7

    def test_profile_file_preferred(self, tmp_path, monkeypatch):
        (tmp_path / "settings.yaml").write_text(yaml.safe_dump({"retrieval": {"top_k": 7}}))
        (tmp_path / "settings-test.yaml").write_text(yaml.safe_dump({"retrieval": {"top_k": 2}}))
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PATENTRAG_PROFILE", "test")
        assert load_settings().retrieval.top_k == 2

        monkeypatch.setenv("PATENTRAG_PROFILE", "missing")
        assert load_settings().retrieval.top_k == 7
