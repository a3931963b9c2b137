"""Configuration manager for ArchGraph using TOML files."""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any, Dict

import toml

from .config import (
    CONFIG_FILE,
    DEFAULT_LLM_ENDPOINT,
    DEFAULT_LLM_MODEL,
    DEFAULT_LLM_PROVIDER,
    AnalysisSettings,
)

logger = logging.getLogger(__name__)


# Default configurations for each provider
DEFAULT_CONFIGS: Dict[str, Dict[str, str]] = {
    "ollama": {
        "provider": DEFAULT_LLM_PROVIDER,
        "model": DEFAULT_LLM_MODEL,
        "endpoint": DEFAULT_LLM_ENDPOINT,
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "api_key": "",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o",
        "api_key": "",
    },
    "anthropic": {
        "provider": "anthropic",
        "model": "claude-3-5-sonnet-20241022",
        "api_key": "",
    },
    "gemini": {
        "provider": "gemini",
        "model": "gemini-2.0-flash",
        "api_key": "",
    },
    "openrouter": {
        "provider": "openrouter",
        "model": "google/gemini-2.0-flash-exp:free",
        "api_key": "",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", CONFIG_FILE, exc)
        return False


def load_config() -> Dict[str, Any]:
    """Load the ``[llm]`` section, falling back to Ollama defaults."""
    return load_full_config().get("llm") or DEFAULT_CONFIGS["ollama"].copy()


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Save LLM configuration, preserving the other sections.

    Args:
        provider: Provider name (ollama, groq, openai, anthropic, gemini, openrouter)
        model: Model name
        api_key: API key for cloud providers
        endpoint: Custom endpoint (Ollama or OpenAI-compatible gateways)

    Returns:
        True if saved successfully, False otherwise
    """
    config = load_full_config()
    config["llm"] = {"provider": provider, "model": model}
    if api_key:
        config["llm"]["api_key"] = api_key
    if endpoint:
        config["llm"]["endpoint"] = endpoint
    return _save_full_config(config)


def clear_config() -> bool:
    """Remove the ``[llm]`` section, resetting to Ollama defaults."""
    config = load_full_config()
    config.pop("llm", None)
    return _save_full_config(config)


def get_provider_config(provider: str) -> Dict[str, str]:
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS["ollama"]).copy()


# ------------------------------------------------------------------
# Analysis configuration
# ------------------------------------------------------------------

def load_analysis_settings() -> AnalysisSettings:
    """Build :class:`AnalysisSettings` from the ``[analysis]`` section.

    Unknown keys are ignored with a warning so an old config file never
    breaks a run.
    """
    section = load_full_config().get("analysis", {})
    known = {f.name for f in fields(AnalysisSettings)}
    overrides = {}
    for key, value in section.items():
        if key in known:
            overrides[key] = value
        else:
            logger.warning("Unknown [analysis] setting '%s' ignored", key)
    return AnalysisSettings(**overrides)


def save_analysis_setting(key: str, value: Any) -> bool:
    known = {f.name for f in fields(AnalysisSettings)}
    if key not in known:
        raise ValueError(f"Unknown analysis setting '{key}'. Valid keys: {', '.join(sorted(known))}")
    config = load_full_config()
    config.setdefault("analysis", {})[key] = value
    return _save_full_config(config)
