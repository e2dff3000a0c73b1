"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the values
# resolved by Settings on top.  settings_from_config() turns the merged
# dict back into a Settings object for build_runtime().
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from folio_ingest.config.settings import Settings

# YAML section -> {yaml key: Settings field}
_SECTION_FIELDS: dict[str, dict[str, str]] = {
    "app": {"env": "app_env"},
    "logging": {"level": "log_level"},
    "database": {"path": "database_path"},
    "queue": {
        "backend": "queue_backend",
        "redis_url": "redis_url",
        "name": "queue_name",
        "max_attempts": "queue_max_attempts",
        "backoff_base_ms": "queue_backoff_base_ms",
        "keep_completed": "queue_keep_completed",
        "keep_failed": "queue_keep_failed",
        "reserve_timeout_seconds": "queue_reserve_timeout_seconds",
    },
    "workers": {"concurrency": "worker_concurrency"},
    "chunking": {
        "max_chunk_size": "chunk_max_size",
        "overlap": "chunk_overlap",
        "preserve_paragraphs": "chunk_preserve_paragraphs",
        "default_category": "default_category",
    },
    "embedding": {
        "concurrency": "embedding_concurrency",
        "timeout_seconds": "embedding_timeout_seconds",
        "max_input_chars": "embedding_max_input_chars",
        "openai_base_url": "openai_base_url",
        "openai_model": "openai_embedding_model",
        "ollama_base_url": "ollama_base_url",
    },
    "upload": {"dir": "upload_dir", "max_bytes": "max_upload_bytes"},
}


def load_config(path: str = "config/config.yaml") -> dict[str, Any]:
    """Load YAML config and merge with environment-based Settings.

    Only settings explicitly provided through the environment or ``.env``
    override YAML values; untouched Settings defaults never clobber YAML.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = Settings()
    explicit = settings.model_fields_set
    env_overrides: dict[str, Any] = {}
    for section, fields in _SECTION_FIELDS.items():
        values = {
            key: getattr(settings, field)
            for key, field in fields.items()
            if field in explicit
        }
        if values:
            env_overrides[section] = values

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def settings_from_config(config: dict[str, Any]) -> Settings:
    """Build a :class:`Settings` from a merged config dictionary.

    Unknown sections and keys are ignored; missing ones keep their defaults.
    """
    values: dict[str, Any] = {}
    for section, fields in _SECTION_FIELDS.items():
        section_values = config.get(section) or {}
        for key, field in fields.items():
            if key in section_values:
                values[field] = section_values[key]
    return Settings(**values)


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
