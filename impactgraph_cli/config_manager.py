"""Configuration manager for ImpactGraph using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import toml

logger = logging.getLogger(__name__)


# Default configurations for each provider
DEFAULT_CONFIGS = {
    "heuristic": {
        "provider": "heuristic",
        "model": "",
    },
    "ollama": {
        "provider": "ollama",
        "model": "qwen2.5:7b",
        "endpoint": "http://127.0.0.1:11434/api/generate",
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "api_key": "",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o-mini",
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
        "model": "google/gemini-2.5-flash",
        "api_key": "",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
}

DEFAULT_ANALYSIS_CONFIG: Dict[str, Any] = {
    "oracle_timeout": 30,
    "max_concurrency": 8,
    "max_document_chars": 100_000,
    "snapshot_chars": 8000,
}


def _config_file() -> Path:
    # Resolved on each call so tests can repoint the config home.
    from .config import CONFIG_FILE

    return CONFIG_FILE


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    path = _config_file()
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    path = _config_file()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", path, exc)
        return False


def load_config() -> Dict[str, Any]:
    """Load the ``[llm]`` section.

    Returns:
        Configuration dictionary with provider settings.
        Falls back to the offline heuristic provider if nothing is configured.
    """
    return load_full_config().get("llm", DEFAULT_CONFIGS["heuristic"].copy())


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Save LLM configuration to TOML file.

    Preserves other sections (e.g. ``[analysis]``) in the file.

    Args:
        provider: Provider name (heuristic, ollama, groq, openai, anthropic, gemini, openrouter)
        model: Model name
        api_key: API key for cloud providers
        endpoint: Custom endpoint (for Ollama or OpenAI-compatible gateways)

    Returns:
        True if saved successfully, False otherwise
    """
    config = load_full_config()

    config["llm"] = {
        "provider": provider,
        "model": model,
    }
    if api_key:
        config["llm"]["api_key"] = api_key
    if endpoint:
        config["llm"]["endpoint"] = endpoint

    return _save_full_config(config)


def clear_config() -> bool:
    """Remove ``[llm]`` section from config, resetting to the heuristic provider."""
    config = load_full_config()
    config.pop("llm", None)
    return _save_full_config(config)


# ------------------------------------------------------------------
# Analysis configuration
# ------------------------------------------------------------------

def load_analysis_config() -> Dict[str, Any]:
    """Load ``[analysis]`` settings merged over the defaults."""
    merged = DEFAULT_ANALYSIS_CONFIG.copy()
    merged.update(load_full_config().get("analysis", {}))
    return merged


def save_analysis_config(**settings: Any) -> bool:
    """Update keys of the ``[analysis]`` section, ignoring unknown ones."""
    config = load_full_config()
    section = config.setdefault("analysis", {})
    for key, value in settings.items():
        if key not in DEFAULT_ANALYSIS_CONFIG:
            logger.warning("Unknown analysis setting '%s' ignored", key)
            continue
        section[key] = value
    return _save_full_config(config)


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Get default configuration for a specific provider.

    Args:
        provider: Provider name

    Returns:
        Default configuration dictionary
    """
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS["heuristic"]).copy()
