"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# Values come from two sources, in priority order:
#
#   1. Environment variables, e.g. REDIS_URL=redis://cache:6379/0
#   2. The .env file in the working directory (local development)
#
# Field ``redis_url`` maps to env var ``REDIS_URL`` automatically.
# Defaults below are used when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """folio-ingest settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === Embedding Providers ===
    # Empty string = "not configured"; main.py falls through to the next provider.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (TogetherAI, etc.)
    openai_embedding_model: str = ""  # Defaults to text-embedding-3-small
    ollama_base_url: str = "http://localhost:11434"

    # === Embedding Fan-out ===
    embedding_concurrency: int = 5
    embedding_timeout_seconds: float = 30.0
    embedding_max_input_chars: int = 8192  # longer chunk text is truncated

    # === Chunking ===
    chunk_max_size: int = 1000
    chunk_overlap: int = 200
    chunk_preserve_paragraphs: bool = True
    default_category: str = "general"

    # === Persistence ===
    database_path: str = "data/folio_ingest.db"

    # === Job Queue ===
    # "redis" for the durable broker, "memory" for single-process use.
    queue_backend: str = "redis"
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "ingest"
    queue_max_attempts: int = 3
    queue_backoff_base_ms: int = 2000
    queue_keep_completed: int = 10
    queue_keep_failed: int = 50
    queue_reserve_timeout_seconds: float = 1.0

    # === Workers ===
    worker_concurrency: int = 2

    # === Upload intake ===
    upload_dir: str = "data/uploads"
    max_upload_bytes: int = 10 * 1024 * 1024

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"
