"""Tests for the TOML configuration manager."""

import pytest

from archgraph_cli import config_manager
from archgraph_cli.config import DEFAULT_EXTENSIONS, MAX_CLUSTERING_ATTEMPTS


def test_missing_file_gives_ollama_defaults():
    assert not config_manager.CONFIG_FILE.exists()
    assert config_manager.load_config()["provider"] == "ollama"
    assert config_manager.load_analysis_settings().max_attempts == MAX_CLUSTERING_ATTEMPTS


def test_llm_and_analysis_sections_coexist():
    assert config_manager.save_analysis_setting("batch_size", 10)
    assert config_manager.save_config("groq", "llama", api_key="gsk")
    assert config_manager.save_analysis_setting("extensions", [".py"])

    llm = config_manager.load_config()
    assert llm == {"provider": "groq", "model": "llama", "api_key": "gsk"}
    settings = config_manager.load_analysis_settings()
    assert settings.batch_size == 10
    assert settings.extensions == [".py"]


def test_clear_config_keeps_analysis():
    config_manager.save_config("openai", "gpt-4o")
    config_manager.save_analysis_setting("max_attempts", 5)
    config_manager.clear_config()

    assert config_manager.load_config()["provider"] == "ollama"
    assert config_manager.load_analysis_settings().max_attempts == 5


def test_unknown_analysis_keys():
    with pytest.raises(ValueError, match="Unknown analysis setting 'colour'"):
        config_manager.save_analysis_setting("colour", "blue")

    config_manager.CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    config_manager.CONFIG_FILE.write_text("[analysis]\ncolour = 'blue'\n", encoding="utf-8")
    assert config_manager.load_analysis_settings().extensions == DEFAULT_EXTENSIONS


def test_unreadable_config_is_ignored():
    config_manager.CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    config_manager.CONFIG_FILE.write_text("this is = = not toml", encoding="utf-8")
    assert config_manager.load_full_config() == {}


def test_provider_defaults():
    assert config_manager.get_provider_config("anthropic")["model"].startswith("claude")
    assert config_manager.get_provider_config("nope") == config_manager.DEFAULT_CONFIGS["ollama"]
