from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from orgauthz.clock import utcnow
from orgauthz.db.base import Base


class AuditEntry(Base):
    """Append-only record of one permission-affecting action. Never updated."""

    __tablename__ = "audit_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    action: Mapped[str] = mapped_column(String(40), nullable=False, index=True)

    target_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    target_role_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_permission_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # "metadata" is reserved on declarative classes.
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
