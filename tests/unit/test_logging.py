"""Unit tests for logging setup and settings."""

from __future__ import annotations

import json
import logging
import sys

from flowchord.config import Settings, get_settings
from flowchord.logging import setup_logging
from flowchord.logging.config import JsonFormatter, build_logging_config


class TestBuildLoggingConfig:
    """Tests for build_logging_config."""

    def test_text_format(self) -> None:
        config = build_logging_config(Settings(log_level="debug", log_format="text"))

        assert config["handlers"]["console"]["class"] == "logging.StreamHandler"
        assert config["handlers"]["console"]["formatter"] == "text"
        assert config["root"]["level"] == "DEBUG"
        assert config["loggers"]["flowchord"]["level"] == "DEBUG"

    def test_rich_format(self) -> None:
        config = build_logging_config(Settings(log_format="rich"))

        assert config["handlers"]["console"]["class"] == "rich.logging.RichHandler"

    def test_unknown_format_falls_back_to_text(self) -> None:
        config = build_logging_config(Settings(log_format="xml"))

        assert config["handlers"]["console"]["formatter"] == "text"

    def test_noisy_libraries_are_quieted(self) -> None:
        config = build_logging_config(Settings())

        assert config["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"
        assert config["loggers"]["httpx"]["level"] == "WARNING"


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_quotes_and_newlines_stay_valid_json(self) -> None:
        record = logging.LogRecord(
            "flowchord.core.executor", logging.WARNING, __file__, 1,
            'Node %s failed: %s', ("B", 'bad "quoted"\nvalue'), None,
        )

        entry = json.loads(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S").format(record))

        assert entry["message"] == 'Node B failed: bad "quoted"\nvalue'
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "flowchord.core.executor"

    def test_exception_is_included(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.getLogger("flowchord").makeRecord(
                "flowchord", logging.ERROR, __file__, 1, "crashed", (), sys.exc_info(),
            )

        entry = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in entry["exc_info"]

    def test_json_format_uses_formatter(self) -> None:
        config = build_logging_config(Settings(log_format="json"))

        assert config["formatters"]["json"]["()"] is JsonFormatter
        assert config["handlers"]["console"]["formatter"] == "json"


class TestSetupLogging:

    def test_applies_level(self) -> None:
        setup_logging(Settings(log_level="WARNING", log_format="json"))

        assert logging.getLogger("flowchord").level == logging.WARNING

    def test_rich_handler_installs(self) -> None:
        from rich.logging import RichHandler

        setup_logging(Settings(log_level="INFO", log_format="rich"))

        assert any(isinstance(h, RichHandler) for h in logging.getLogger().handlers)


class TestSettings:

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.max_workflow_nodes == 100
        assert settings.retry_base_delay == 0.0
        assert settings.is_sqlite is True
        assert settings.is_production is False

    def test_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("MAX_WORKFLOW_NODES", "7")
        monkeypatch.setenv("ENVIRONMENT", "production")

        settings = Settings()

        assert settings.max_workflow_nodes == 7
        assert settings.is_production is True

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
