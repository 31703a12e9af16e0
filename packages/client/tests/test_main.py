"""Tests for the watcher entry point."""

import json

import pytest
import structlog

from teamboard_client.config import TeamboardConfig
from teamboard_client.main import NotificationWatcher, configure_logging


@pytest.fixture(autouse=True)
def restore_structlog():
    yield
    structlog.reset_defaults()


def test_configure_logging_filters_by_level(capsys):
    configure_logging("WARNING", "json")
    log = structlog.get_logger()
    log.info("watch.ignored")
    log.error("watch.failed", reason="boom")

    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert [json.loads(line)["event"] for line in lines] == ["watch.failed"]


def test_configure_logging_text_format(capsys):
    configure_logging("debug", "text")
    structlog.get_logger().debug("watch.debug")
    assert "watch.debug" in capsys.readouterr().out


async def test_start_without_account_is_rejected(client):
    watcher = NotificationWatcher(TeamboardConfig(), client=client)
    with pytest.raises(ValueError):
        await watcher.start()
