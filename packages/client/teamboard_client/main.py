"""
Notification watcher entry point.

Loads configuration, configures logging, logs in and logs every notification
change pushed by the server until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

import structlog

from teamboard_shared.schemas.changes import ChangeEvent
from teamboard_shared.schemas.common import ChangeType

from .api import TeamboardAPIError, TeamboardClient
from .config import TeamboardConfig, load_config
from .notifications import NotificationFeed
from .sse_listener import ChangeStreamListener

NOTIFICATIONS_STREAM_PATH = "/api/v1/notifications/stream"
SHUTDOWN_TIMEOUT = 15.0
STATUS_INTERVAL_SECONDS = 30.0


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the specified level and format."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


class NotificationWatcher:
    """Logs in, primes the feed, and keeps it live from the change stream."""

    def __init__(self, config: TeamboardConfig, client: TeamboardClient | None = None):
        self._config = config
        self._client = client or TeamboardClient(
            config.server.url,
            verify_tls=config.server.verify_tls,
            request_timeout=config.server.request_timeout_seconds,
        )
        self._feed = NotificationFeed(self._client, limit=config.feed.limit)
        self._listener: ChangeStreamListener | None = None
        self._shutdown_event = asyncio.Event()
        self._log = structlog.get_logger()

    @property
    def feed(self) -> NotificationFeed:
        return self._feed

    async def handle_event(self, event: ChangeEvent) -> None:
        self._feed.apply_change(event)
        if event.type == ChangeType.INSERT:
            self._log.info(
                "watch.notification",
                title=event.get("title"),
                message=event.get("message"),
                type=event.get("type"),
                unread=self._feed.unread_count,
            )
        else:
            self._log.debug("watch.notification_changed", type=event.type.value, unread=self._feed.unread_count)

    async def start(self) -> None:
        account = self._config.account
        if account is None or not account.password:
            raise ValueError("account.email and the password environment variable are required")

        await self._client.login(account.email, account.password)
        await self._feed.refresh()
        self._log.info("watch.started", unread=self._feed.unread_count, total=len(self._feed.items))

        self._listener = ChangeStreamListener(
            self._config.server.url,
            NOTIFICATIONS_STREAM_PATH,
            self._client.token,
            verify_tls=self._config.server.verify_tls,
        )
        self._listener.on_event(self.handle_event)
        await self._listener.start()

    async def stop(self) -> None:
        if self._listener:
            await self._listener.stop()
        try:
            await self._client.logout()
        except TeamboardAPIError:
            self._log.warning("watch.logout_failed")
        await self._client.close()
        self._log.info("watch.stopped")

    async def run_forever(self) -> None:
        """Run until shutdown signal or until the stream gives up."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._shutdown_event.set)

        await self.start()

        try:
            while not self._shutdown_event.is_set():
                if self._listener and not self._listener.running:
                    self._log.error("watch.stream_ended")
                    break
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=STATUS_INTERVAL_SECONDS)
                except asyncio.TimeoutError:
                    pass
        finally:
            await asyncio.wait_for(self.stop(), timeout=SHUTDOWN_TIMEOUT)


def run() -> None:
    """CLI entry point for the notification watcher."""
    parser = argparse.ArgumentParser(description="Watch Teamboard notifications")
    parser.add_argument(
        "-c", "--config",
        default="teamboard.yaml",
        help="Path to configuration file (default: teamboard.yaml)",
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.logging.level, config.logging.format)
    log = structlog.get_logger()
    log.info("watch.config_loaded", config_path=args.config, server=config.server.url)

    watcher = NotificationWatcher(config)
    try:
        asyncio.run(watcher.run_forever())
    except KeyboardInterrupt:
        pass
    except (TeamboardAPIError, ValueError) as exc:
        log.error("watch.failed", error=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    run()
