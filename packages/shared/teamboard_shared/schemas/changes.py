"""Row change events delivered over the real-time feed."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .common import ChangeType


class ChangeEvent(BaseModel):
    """A committed INSERT, UPDATE or DELETE on a watched table.

    ``record`` holds the row after the change (empty for DELETE) and
    ``old_record`` the row before it (empty for INSERT).
    """
    table: str
    type: ChangeType
    record: dict[str, Any] = Field(default_factory=dict)
    old_record: dict[str, Any] = Field(default_factory=dict)
    commit_timestamp: datetime

    @property
    def row(self) -> dict[str, Any]:
        return self.old_record if self.type == ChangeType.DELETE else self.record

    def get(self, column: str) -> Optional[Any]:
        return self.row.get(column)
