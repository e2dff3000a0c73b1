"""Unit tests for the YAML + environment configuration layer."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from folio_ingest.config.loader import _deep_merge, load_config, settings_from_config


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run from an empty directory so a developer's .env is never picked up."""
    monkeypatch.chdir(tmp_path)
    for var in ("QUEUE_BACKEND", "CHUNK_MAX_SIZE", "REDIS_URL", "WORKER_CONCURRENCY"):
        monkeypatch.delenv(var, raising=False)


def _write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_missing_file_yields_empty_config(self, tmp_path: Path) -> None:
        assert load_config(str(tmp_path / "nope.yaml")) == {}

    def test_yaml_values_survive_untouched_defaults(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "c.yaml", {"queue": {"backend": "memory"}})

        config = load_config(str(path))

        assert config["queue"]["backend"] == "memory"

    def test_environment_overrides_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = _write_yaml(
            tmp_path / "c.yaml",
            {"queue": {"backend": "memory", "name": "ingest"}, "chunking": {"max_chunk_size": 800}},
        )
        monkeypatch.setenv("QUEUE_BACKEND", "redis")
        monkeypatch.setenv("CHUNK_MAX_SIZE", "1500")

        config = load_config(str(path))

        assert config["queue"] == {"backend": "redis", "name": "ingest"}
        assert config["chunking"]["max_chunk_size"] == 1500


class TestSettingsFromConfig:
    def test_sections_map_to_fields(self) -> None:
        settings = settings_from_config(
            {
                "queue": {"backend": "memory", "max_attempts": 5},
                "chunking": {"max_chunk_size": 600, "preserve_paragraphs": False},
                "embedding": {"max_input_chars": 4000},
                "upload": {"dir": "/srv/uploads"},
                "unknown": {"ignored": True},
            }
        )

        assert settings.queue_backend == "memory"
        assert settings.queue_max_attempts == 5
        assert settings.chunk_max_size == 600
        assert settings.chunk_preserve_paragraphs is False
        assert settings.embedding_max_input_chars == 4000
        assert settings.upload_dir == "/srv/uploads"

    def test_missing_sections_keep_defaults(self) -> None:
        settings = settings_from_config({})
        assert settings.chunk_overlap == 200
        assert settings.embedding_concurrency == 5
        assert settings.embedding_max_input_chars == 8192
        assert settings.queue_backoff_base_ms == 2000

    def test_shipped_config_file_loads(self) -> None:
        shipped = Path(__file__).resolve().parents[2] / "config" / "config.yaml"
        settings = settings_from_config(load_config(str(shipped)))

        assert settings.worker_concurrency == 2
        assert settings.max_upload_bytes == 10 * 1024 * 1024


class TestDeepMerge:
    def test_nested_merge(self) -> None:
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        _deep_merge(base, {"a": {"y": 3}, "c": 4})
        assert base == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
