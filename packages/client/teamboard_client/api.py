"""
Async HTTP client for the Teamboard API.

Wraps an ``httpx.AsyncClient`` carrying the bearer token obtained at login.
Non-2xx responses raise :class:`TeamboardAPIError` with the server's error
envelope unpacked.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import httpx
import structlog

from teamboard_shared.schemas.common import TaskStatus
from teamboard_shared.schemas.notifications import (
    NotificationList,
    NotificationRead,
    UnreadCount,
)
from teamboard_shared.schemas.tasks import TaskBoard, TaskRead

log = structlog.get_logger()


class TeamboardAPIError(Exception):
    """An API call failed; carries the HTTP status and error envelope fields."""

    def __init__(self, status: int, code: str, message: str):
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message

    @classmethod
    def from_response(cls, response: httpx.Response) -> "TeamboardAPIError":
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        return cls(
            status=response.status_code,
            code=error.get("code", "HTTP_ERROR"),
            message=error.get("message", response.reason_phrase),
        )


class TeamboardClient:
    """Bearer-token client for the endpoints a board/notification UI needs."""

    def __init__(
        self,
        base_url: str,
        verify_tls: bool = True,
        request_timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(request_timeout),
            verify=verify_tls,
            transport=transport,
        )
        self._token: str | None = None
        self.user_id: UUID | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token(self) -> str | None:
        return self._token

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "TeamboardClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            log.error("client.transport_error", method=method, path=path, error=str(exc))
            raise TeamboardAPIError(0, "TRANSPORT_ERROR", str(exc)) from exc

        if response.is_error:
            error = TeamboardAPIError.from_response(response)
            log.warning(
                "client.request_failed",
                method=method,
                path=path,
                status=error.status,
                code=error.code,
            )
            raise error

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # --- Auth ---

    async def login(self, email: str, password: str) -> dict[str, Any]:
        data = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        self._token = data["access_token"]
        self.user_id = UUID(data["user_id"])
        log.info("client.logged_in", user_id=data["user_id"], approved=data["is_approved"])
        return data

    async def logout(self) -> None:
        if self._token:
            await self._request("POST", "/auth/logout")
            self._token = None

    # --- Tasks ---

    async def list_tasks(self, **filters: Any) -> list[TaskRead]:
        params = {k: str(v) for k, v in filters.items() if v is not None}
        data = await self._request("GET", "/api/v1/tasks/", params=params)
        return [TaskRead.model_validate(t) for t in data]

    async def get_task(self, task_id: UUID) -> TaskRead:
        return TaskRead.model_validate(await self._request("GET", f"/api/v1/tasks/{task_id}"))

    async def board(self, project_id: UUID | None = None) -> TaskBoard:
        params = {"project_id": str(project_id)} if project_id else {}
        return TaskBoard.model_validate(await self._request("GET", "/api/v1/tasks/board", params=params))

    async def set_task_status(self, task_id: UUID, status: TaskStatus) -> TaskRead:
        data = await self._request(
            "PATCH",
            f"/api/v1/tasks/{task_id}/status",
            json={"status": TaskStatus(status).value},
        )
        return TaskRead.model_validate(data)

    # --- Notifications ---

    async def list_notifications(self) -> NotificationList:
        return NotificationList.model_validate(await self._request("GET", "/api/v1/notifications/"))

    async def unread_count(self) -> int:
        data = await self._request("GET", "/api/v1/notifications/unread-count")
        return UnreadCount.model_validate(data).unread_count

    async def mark_notification_read(self, notification_id: UUID) -> NotificationRead:
        data = await self._request("POST", f"/api/v1/notifications/{notification_id}/read")
        return NotificationRead.model_validate(data)

    async def mark_all_notifications_read(self) -> int:
        data = await self._request("POST", "/api/v1/notifications/read-all")
        return UnreadCount.model_validate(data).unread_count

    async def delete_notification(self, notification_id: UUID) -> None:
        await self._request("DELETE", f"/api/v1/notifications/{notification_id}")
