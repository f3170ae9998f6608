"""Configuration paths and analysis defaults for local ImpactGraph storage."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("IMPACTGRAPH_HOME", str(Path.home() / ".impactgraph"))).expanduser()
DB_PATH = Path(os.environ.get("IMPACTGRAPH_DB", str(BASE_DIR / "impact.db"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

SUPPORTED_DOCUMENT_EXTENSIONS = {".txt", ".md", ".markdown", ".json"}

# Load configuration from TOML file (if available)
from .config_manager import load_analysis_config, load_config  # noqa: E402

_llm_config = load_config()
_analysis_config = load_analysis_config()

# LLM provider, set via `ig set-llm` (default: "heuristic" = offline, deterministic)
LLM_PROVIDER = _llm_config.get("provider", "heuristic")
LLM_API_KEY = _llm_config.get("api_key", "")
LLM_MODEL = _llm_config.get("model", "")
LLM_ENDPOINT = _llm_config.get("endpoint", "")

# Seconds allowed per oracle sub-request before the target counts as failed
ORACLE_TIMEOUT = float(_analysis_config.get("oracle_timeout", 30))
MAX_CONCURRENCY = int(_analysis_config.get("max_concurrency", 8))
MAX_DOCUMENT_CHARS = int(_analysis_config.get("max_document_chars", 100_000))
SNAPSHOT_CHARS = int(_analysis_config.get("snapshot_chars", 8000))


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
