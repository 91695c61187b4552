"""
Tests for DocQASettings and get_settings.

Validates:
1. Defaults and DOCQA_-prefixed environment overrides
2. Path resolution against the project root
3. Invalid values surface as ConfigurationError
"""

from pathlib import Path

import pytest

from ingestion.config import DocQASettings, get_settings
from rag_core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the developer's environment and .env file out of these tests."""
    for name in ("GROQ_API_KEY", "SEARCHAPI_API_KEY", "DOCQA_GROQ_API_KEY", "DOCQA_CHUNK_SIZE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestSettings:
    """Reading and validating configuration."""

    def test_defaults(self):
        settings = DocQASettings()

        assert settings.chunk_size == 200
        assert settings.chunk_overlap == 50
        assert settings.separators == ["\n\n", "\n", " ", ""]
        assert settings.retrieval_k == 4
        assert settings.agent_max_steps == 15
        assert settings.groq_api_key is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DOCQA_CHUNK_SIZE", "300")
        monkeypatch.setenv("GROQ_API_KEY", "gsk-test")

        settings = get_settings()

        assert settings.chunk_size == 300
        assert settings.groq_api_key.get_secret_value() == "gsk-test"

    def test_dotenv_file_is_read(self, tmp_path):
        (tmp_path / ".env").write_text("DOCQA_RETRIEVAL_K=7\n", encoding="utf-8")

        assert DocQASettings().retrieval_k == 7

    def test_relative_paths_are_resolved(self, tmp_path):
        settings = get_settings(project_root=tmp_path)

        assert settings.store_dir == tmp_path / "data" / "store"
        assert settings.source_dir == tmp_path / "data" / "sources"

    def test_absolute_paths_are_kept(self, tmp_path):
        settings = get_settings(project_root=tmp_path, store_dir=Path("/srv/store"))

        assert settings.store_dir == Path("/srv/store")


class TestValidation:
    """Invalid values fail once, up front."""

    def test_overlap_must_be_smaller_than_size(self):
        with pytest.raises(ConfigurationError):
            get_settings(chunk_size=50, chunk_overlap=50)

    @pytest.mark.parametrize(
        "overrides",
        [{"chunk_size": 0}, {"chunk_overlap": -1}, {"agent_max_steps": 0}, {"retrieval_k": -1}, {"temperature": 3.0}],
    )
    def test_out_of_range_values(self, overrides):
        with pytest.raises(ConfigurationError) as exc_info:
            get_settings(**overrides)

        assert exc_info.value.field == next(iter(overrides))
