"""Unit tests for structlog configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from folio_ingest.utils.logging import configure_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestConfigureLogging:
    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = configure_logging("INFO", json_output=True)
        logger.info("document_embedded", document_id=3)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "document_embedded"
        assert event["document_id"] == 3
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = configure_logging("WARNING", json_output=True)
        logger.info("hidden")
        logger.warning("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out

    def test_production_env_selects_json(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("APP_ENV", "production")
        configure_logging("INFO").info("queue_started")

        assert json.loads(capsys.readouterr().out.strip())["event"] == "queue_started"

    def test_sdk_loggers_quieted(self) -> None:
        configure_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("openai").level == logging.WARNING
