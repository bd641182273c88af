from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orgauthz.clock import utcnow
from orgauthz.db.base import Base, MaskType

SYSTEM_ROLE_TYPES = ("owner", "admin", "moderator", "member")


class Permission(Base):
    """Catalog row for a registered permission code (seeded from the registry file)."""

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    bit_position: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    is_addon: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    is_dangerous: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Role(Base):
    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("organization_id", "name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)

    permissions: Mapped[int] = mapped_column(MaskType, default=0, nullable=False)

    # Display ordering only; every assigned role contributes via OR.
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_system_role: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    system_role_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_assignable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class RoleAssignment(Base):
    __tablename__ = "role_assignments"
    __table_args__ = (UniqueConstraint("membership_id", "role_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    membership_id: Mapped[int] = mapped_column(ForeignKey("memberships.id"), nullable=False, index=True)
    # No FK: a deleted role leaves a dangling assignment that resolves to nothing.
    role_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    assigned_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class AddonGrant(Base):
    __tablename__ = "addon_grants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    permission_id: Mapped[int] = mapped_column(Integer, nullable=False)

    purchased_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    purchased_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    price_paid: Mapped[float | None] = mapped_column(Numeric(10, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def is_live(self, now: datetime) -> bool:
        return self.is_active and (self.expires_at is None or self.expires_at > now)


class PermissionOverride(Base):
    """Membership-scoped signed exception: allow=True grants, allow=False revokes."""

    __tablename__ = "permission_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    membership_id: Mapped[int] = mapped_column(ForeignKey("memberships.id"), nullable=False, index=True)
    permission_id: Mapped[int] = mapped_column(Integer, nullable=False)

    allow: Mapped[bool] = mapped_column(Boolean, nullable=False)

    granted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def is_live(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now
