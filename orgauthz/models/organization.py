from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgauthz.clock import utcnow
from orgauthz.db.base import Base, MaskType

MEMBER_STATUSES = ("invited", "active", "suspended", "left")
SUBSCRIPTION_STATUSES = ("active", "trialing", "past_due", "cancelled", "paused")


class SubscriptionTier(Base):
    __tablename__ = "subscription_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Granted to every organization on this tier.
    base_permissions: Mapped[int] = mapped_column(MaskType, default=0, nullable=False)
    max_members: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    subscription_tier_id: Mapped[int] = mapped_column(ForeignKey("subscription_tiers.id"), nullable=False, index=True)
    subscription_status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)

    # Organization-level grants independent of tier (negotiated extras).
    custom_permissions: Mapped[int] = mapped_column(MaskType, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    tier: Mapped[SubscriptionTier] = relationship()
    memberships: Mapped[list["Membership"]] = relationship(back_populates="organization")


class Membership(Base):
    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("organization_id", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # invited | active | suspended | left. Only "active" resolves to permissions.
    status: Mapped[str] = mapped_column(String(20), default="invited", nullable=False, index=True)

    invited_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invited_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    joined_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Resolution cache; written only by refresh_and_store.
    computed_permissions: Mapped[int] = mapped_column(MaskType, default=0, nullable=False)
    permissions_last_computed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    organization: Mapped[Organization] = relationship(back_populates="memberships")

    @property
    def is_active(self) -> bool:
        return self.status == "active"
