"""
SSE listener for Teamboard change streams.

Maintains a persistent SSE connection to one stream endpoint with:
- Automatic reconnection with exponential backoff
- Dispatch of parsed change events to registered handlers
- Graceful shutdown support (closing the connection unsubscribes server-side)
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Coroutine

import httpx
import structlog
from pydantic import ValidationError

from teamboard_shared.schemas.changes import ChangeEvent

log = structlog.get_logger()

# Reconnection parameters
RECONNECT_BASE_SECONDS = 1.0
RECONNECT_MAX_SECONDS = 60.0
RECONNECT_MULTIPLIER = 2.0

CHANGE_EVENT = "change"
REVOKED_EVENT = "session.revoked"

EventHandler = Callable[[ChangeEvent], Coroutine[Any, Any, None]]


class ChangeStreamListener:
    """
    Persistent SSE connection to a Teamboard change stream, e.g.
    ``/api/v1/notifications/stream`` or ``/api/v1/tasks/{id}/stream``.
    """

    def __init__(
        self,
        base_url: str,
        path: str,
        token: str,
        verify_tls: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._path = path
        self._token = token
        self._verify_tls = verify_tls
        self._transport = transport

        self._handlers: list[EventHandler] = []
        self._running = False
        self._connected = False
        self._last_event_at: float | None = None
        self._reconnect_count = 0
        self._task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_event_at(self) -> float | None:
        return self._last_event_at

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    def on_event(self, handler: EventHandler) -> None:
        """Register an event handler."""
        self._handlers.append(handler)

    async def start(self) -> None:
        """Start the SSE listener loop."""
        self._running = True
        self._task = asyncio.create_task(self._listen_loop())

    async def stop(self) -> None:
        """Gracefully stop the SSE listener."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._connected = False
        log.info("sse_listener.stopped", path=self._path)

    async def _listen_loop(self) -> None:
        backoff = RECONNECT_BASE_SECONDS

        while self._running:
            try:
                await self._connect_and_stream()
                backoff = RECONNECT_BASE_SECONDS  # Reset on clean disconnect
            except asyncio.CancelledError:
                raise
            except httpx.HTTPStatusError as exc:
                self._connected = False
                if exc.response.status_code in (401, 403):
                    log.error(
                        "sse_listener.unauthorized",
                        path=self._path,
                        status=exc.response.status_code,
                    )
                    self._running = False
                    break
                log.warning("sse_listener.connection_lost", path=self._path, error=str(exc), backoff=backoff)
            except httpx.HTTPError as exc:
                self._connected = False
                log.warning("sse_listener.connection_lost", path=self._path, error=str(exc), backoff=backoff)

            if not self._running:
                break

            self._reconnect_count += 1
            log.info(
                "sse_listener.reconnecting",
                path=self._path,
                backoff=backoff,
                attempt=self._reconnect_count,
            )
            await asyncio.sleep(backoff)
            backoff = min(backoff * RECONNECT_MULTIPLIER, RECONNECT_MAX_SECONDS)

    async def _connect_and_stream(self) -> None:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "text/event-stream",
        }
        url = f"{self._base_url}{self._path}"

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(None),
            verify=self._verify_tls,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url, headers=headers) as response:
                response.raise_for_status()
                self._connected = True
                self._last_event_at = time.time()
                log.info("sse_listener.connected", url=url)

                current_event_type: str | None = None
                current_data_lines: list[str] = []

                async for line in response.aiter_lines():
                    if not self._running:
                        break

                    line = line.rstrip("\r\n")
                    self._last_event_at = time.time()

                    if line.startswith("event:"):
                        current_event_type = line[6:].strip()
                    elif line.startswith("data:"):
                        current_data_lines.append(line[5:].strip())
                    elif line.startswith(":"):
                        # Comment / heartbeat
                        pass
                    elif line == "":
                        if current_event_type == REVOKED_EVENT:
                            log.warning("sse_listener.session_revoked", path=self._path)
                            self._running = False
                            break
                        if current_data_lines:
                            await self._dispatch_event(current_event_type, current_data_lines)
                        current_event_type = None
                        current_data_lines = []

        self._connected = False

    async def _dispatch_event(self, event_type: str | None, data_lines: list[str]) -> None:
        if event_type not in (None, CHANGE_EVENT):
            log.debug("sse_listener.ignored_event", event_type=event_type)
            return

        data_str = "\n".join(data_lines)
        try:
            event = ChangeEvent.model_validate(json.loads(data_str))
        except (json.JSONDecodeError, ValidationError):
            log.warning("sse_listener.parse_error", data=data_str[:200])
            return

        for handler in self._handlers:
            try:
                await handler(event)
            except Exception:
                log.exception(
                    "sse_listener.handler_error",
                    table=event.table,
                    type=event.type.value,
                )
