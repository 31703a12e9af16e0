"""Profile schemas for the team page and the approval gate."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, UUID4

from .common import Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ProfileUpdate(BaseModel):
    """Update a profile.

    Name fields may be changed by the profile owner or an admin. ``role`` and
    ``is_approved`` may only be changed by an admin.
    """
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    role: Optional[Role] = None
    is_approved: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ProfileRead(BaseModel):
    """Single profile response."""
    id: UUID4
    user_id: UUID4
    email: str
    first_name: str = ""
    last_name: str = ""
    role: Role
    is_approved: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email


class ProfileListResponse(BaseModel):
    """List of profiles."""
    data: List[ProfileRead]
