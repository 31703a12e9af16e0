from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class NotificationRead(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    message: str
    type: str
    related_type: Optional[str] = None
    related_id: Optional[UUID] = None
    read: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NotificationList(BaseModel):
    data: List[NotificationRead] = Field(default_factory=list)
    unread_count: int = 0


class UnreadCount(BaseModel):
    unread_count: int
