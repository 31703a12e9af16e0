"""
Structured logging setup: level filtering and renderers.
"""

from __future__ import annotations

import json

import pytest
import structlog

from teamboard.core.logging import configure_logging


@pytest.fixture(autouse=True)
def restore_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_level_filters_lower_levels(self, capsys):
        configure_logging("warning", "json")
        log = structlog.get_logger()

        log.info("quiet.event")
        log.warning("loud.event", task_id="t1")

        lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["event"] == "loud.event"
        assert entry["level"] == "warning"
        assert entry["task_id"] == "t1"

    @pytest.mark.parametrize("level", ["DEBUG", "info", "Error"])
    def test_level_names_are_case_insensitive(self, capsys, level):
        configure_logging(level, "json")
        structlog.get_logger().critical("always.shown")
        assert "always.shown" in capsys.readouterr().out

    def test_console_renderer(self, capsys):
        configure_logging("info", "console")
        structlog.get_logger().info("console.event")
        out = capsys.readouterr().out
        assert "console.event" in out
        with pytest.raises(json.JSONDecodeError):
            json.loads(out.strip().splitlines()[-1])
