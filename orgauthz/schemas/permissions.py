from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PermissionCheckOut(BaseModel):
    code: str
    granted: bool


class RefreshOut(BaseModel):
    membership_id: int
    permissions: int


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int | None
    actor_id: str | None
    action: str
    target_user_id: str | None
    target_role_id: int | None
    target_permission_id: int | None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="details")
    created_at: datetime
