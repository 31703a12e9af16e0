"""
Local Kanban board state with optimistic status moves.

A move is applied to the local columns first, then written to the server.
If the write fails the local state is replaced with a fresh board read, so
the UI never keeps a status the server rejected.
"""

from __future__ import annotations

from uuid import UUID

import structlog

from teamboard_shared.schemas.common import TASK_STATUS_ORDER, TaskStatus
from teamboard_shared.schemas.tasks import TaskBoard, TaskRead

from .api import TeamboardAPIError, TeamboardClient

log = structlog.get_logger()


class KanbanBoard:
    def __init__(self, client: TeamboardClient, project_id: UUID | None = None):
        self._client = client
        self._project_id = project_id
        self._columns: dict[TaskStatus, list[TaskRead]] = {s: [] for s in TASK_STATUS_ORDER}

    @property
    def columns(self) -> dict[TaskStatus, list[TaskRead]]:
        return self._columns

    def tasks_in(self, status: TaskStatus) -> list[TaskRead]:
        return list(self._columns[TaskStatus(status)])

    def find(self, task_id: UUID) -> TaskRead | None:
        for tasks in self._columns.values():
            for task in tasks:
                if task.id == task_id:
                    return task
        return None

    def load(self, board: TaskBoard) -> None:
        """Replace local state with an authoritative board."""
        self._columns = {s: [] for s in TASK_STATUS_ORDER}
        for column in board.columns:
            self._columns[column.status] = list(column.tasks)

    async def refresh(self) -> None:
        self.load(await self._client.board(self._project_id))

    def _apply_move(self, task: TaskRead, status: TaskStatus) -> TaskRead:
        self._columns[task.status] = [t for t in self._columns[task.status] if t.id != task.id]
        moved = task.model_copy(update={"status": status})
        self._columns[status].insert(0, moved)
        return moved

    async def move(self, task_id: UUID, status: TaskStatus) -> bool:
        """Move a task to ``status``. Returns False if the server rejected it.

        On failure the board is refetched; if the refetch itself fails the
        previous local state is kept and the error propagates.
        """
        status = TaskStatus(status)
        task = self.find(task_id)
        if task is None:
            raise KeyError(task_id)
        if task.status == status:
            return True

        origin = [t.id for t in self._columns[task.status]].index(task_id)
        self._apply_move(task, status)

        try:
            updated = await self._client.set_task_status(task_id, status)
        except TeamboardAPIError as exc:
            log.warning(
                "board.move_failed",
                task_id=str(task_id),
                status=status.value,
                error_status=exc.status,
                error=exc.message,
            )
            previous = {s: list(tasks) for s, tasks in self._columns.items()}
            try:
                await self.refresh()
            except TeamboardAPIError:
                # Undo locally so the board still reflects the last known server state.
                previous[status] = [t for t in previous[status] if t.id != task_id]
                previous[task.status].insert(origin, task)
                self._columns = previous
                raise
            return False

        # Server copy wins (updated_at etc.)
        self._columns[status] = [updated if t.id == task_id else t for t in self._columns[status]]
        log.info("board.task_moved", task_id=str(task_id), status=status.value)
        return True
