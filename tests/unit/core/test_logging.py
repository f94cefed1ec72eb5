"""Tests for logging configuration."""

from __future__ import annotations

import logging
from typing import Any

import pytest
import structlog

from arcane_warding.core.logging import add_app_context, configure_logging


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> dict[str, dict[str, Any]]:
    """Record configuration calls instead of touching global logging state."""
    recorded: dict[str, dict[str, Any]] = {}
    monkeypatch.setattr(structlog, "configure", lambda **kw: recorded.update(structlog=kw))
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: recorded.update(stdlib=kw))
    return recorded


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_console_output_by_default(self, calls: dict[str, dict[str, Any]]) -> None:
        configure_logging()

        renderer = calls["structlog"]["processors"][-1]
        assert isinstance(renderer, structlog.dev.ConsoleRenderer)
        assert calls["stdlib"]["level"] == logging.INFO

    def test_json_output(self, calls: dict[str, dict[str, Any]]) -> None:
        configure_logging(level="warning", json_format=True)

        renderer = calls["structlog"]["processors"][-1]
        assert isinstance(renderer, structlog.processors.JSONRenderer)
        assert calls["stdlib"]["level"] == logging.WARNING

    def test_logs_only_to_stdout(self, calls: dict[str, dict[str, Any]]) -> None:
        """No file handler is ever installed."""
        configure_logging(level="DEBUG")

        assert "handlers" not in calls["stdlib"]
        assert "filename" not in calls["stdlib"]

    def test_rejects_unknown_options(self, calls: dict[str, dict[str, Any]]) -> None:
        with pytest.raises(TypeError):
            configure_logging(log_file="wards.log")  # type: ignore[call-arg]

        assert calls == {}


def test_app_context_is_added() -> None:
    event = add_app_context(None, "info", {"event": "Ward absorbed damage"})

    assert event["app"] == "arcane_warding"
