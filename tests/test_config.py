"""Tests for configuration building, validation and API key discovery."""

from unittest.mock import patch

import pytest

from mediascribe.config import (
    DEFAULT_CHUNK_DURATION_SECONDS,
    DEFAULT_MAX_SINGLE_SHOT_BYTES,
    TranscriberConfig,
    load_api_key,
    require_api_key,
)
from mediascribe.config_loader import ConfigLoader
from mediascribe.exceptions import ConfigurationError


def test_defaults():
    config = TranscriberConfig()
    assert config.max_single_shot_bytes == DEFAULT_MAX_SINGLE_SHOT_BYTES == 25 * 1024 * 1024
    assert config.chunk_duration_seconds == DEFAULT_CHUNK_DURATION_SECONDS == 1000.0
    assert config.output_dir == "podcast-transcripts"
    assert config.backend == "openai"
    assert config.chunk_workers == 1


def test_from_mapping_applies_overrides_over_file_values():
    config = TranscriberConfig.from_mapping(
        {"language": "de", "limit": 5, "chunk_workers": 2},
        language="fr",
        limit=None,
    )
    assert config.language == "fr"
    assert config.limit == 5
    assert config.chunk_workers == 2


def test_from_mapping_rejects_unknown_keys():
    with pytest.raises(ConfigurationError, match="chunk_size"):
        TranscriberConfig.from_mapping({"chunk_size": 10})


@pytest.mark.parametrize("values", [
    {"backend": "azure"},
    {"limit": 0},
    {"max_single_shot_bytes": 0},
    {"chunk_duration_seconds": -1},
    {"max_resplit_attempts": -1},
    {"chunk_workers": 0},
    {"temperature": 1.5},
    {"device": "tpu"},
    {"limit": 2.5},
    {"limit": "3"},
    {"chunk_workers": True},
    {"chunk_duration_seconds": "600"},
    {"max_single_shot_bytes": 1.5e6},
])
def test_invalid_values_are_rejected(values):
    with pytest.raises(ConfigurationError):
        TranscriberConfig.from_mapping(values)


def test_config_is_immutable():
    config = TranscriberConfig()
    with pytest.raises(AttributeError):
        config.language = "en"
    assert config.replace(language="en").language == "en"
    assert config.language is None


def test_require_api_key():
    require_api_key(TranscriberConfig(api_key="sk-abc"))
    # The local backend works without a key
    require_api_key(TranscriberConfig(backend="local"))
    with pytest.raises(ConfigurationError, match="API key not found"):
        require_api_key(TranscriberConfig())
    with pytest.raises(ConfigurationError, match="sk-"):
        require_api_key(TranscriberConfig(api_key="abc"))


def test_load_api_key_prefers_explicit_value(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    assert load_api_key("  sk-explicit ") == "sk-explicit"


def test_load_api_key_reads_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    with patch("mediascribe.config.load_dotenv", return_value=False):
        assert load_api_key(None) == "sk-from-env"


def test_load_api_key_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with patch("mediascribe.config.load_dotenv", return_value=False) as load_dotenv:
        assert load_api_key(None) is None
    load_dotenv.assert_called_once_with()


class TestConfigLoader:
    def test_loads_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("language: en\nchunk_duration_seconds: 600\n", encoding="utf-8")
        assert ConfigLoader().load_config(str(path)) == {"language": "en", "chunk_duration_seconds": 600}

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert ConfigLoader().load_config(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader().load_config(str(tmp_path / "missing.yaml"))

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("language: [en\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(str(path))


def test_integer_valued_numbers_are_accepted():
    config = TranscriberConfig.from_mapping({"chunk_duration_seconds": 600, "temperature": 0, "request_timeout": 30})
    assert config.chunk_duration_seconds == 600
