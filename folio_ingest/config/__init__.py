"""Configuration module: Settings and the YAML loader."""

from folio_ingest.config.loader import load_config, settings_from_config
from folio_ingest.config.settings import Settings

__all__ = ["Settings", "load_config", "settings_from_config"]
