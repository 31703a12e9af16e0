"""Comment thread schemas for projects and tasks."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, UUID4, model_validator

DEFAULT_ATTACHMENT_CONTENT = "Attached file"


class MessageCreate(BaseModel):
    content: str = ""
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    mentioned_users: List[UUID4] = Field(default_factory=list)

    @model_validator(mode="after")
    def _content_or_file(self):
        if not self.content.strip() and not self.file_url:
            raise ValueError("A message needs content or an attached file")
        if self.file_url and not self.file_name:
            raise ValueError("file_name is required with file_url")
        if not self.content.strip():
            self.content = DEFAULT_ATTACHMENT_CONTENT
        return self


class MessageRead(BaseModel):
    id: UUID4
    content: str
    project_id: Optional[UUID4] = None
    task_id: Optional[UUID4] = None
    sender_id: UUID4
    sender_first_name: str = ""
    sender_last_name: str = ""
    mentioned_users: List[UUID4] = Field(default_factory=list)
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    created_at: datetime
