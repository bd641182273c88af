from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import functools
import logging
from typing import TypeVar

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgauthz.errors import StoreUnavailable
from orgauthz.models import (
    AddonGrant,
    AuditEntry,
    Membership,
    Organization,
    Permission,
    PermissionOverride,
    Role,
    RoleAssignment,
    SubscriptionTier,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _store_call(fn: Callable[..., T]) -> Callable[..., T]:
    """Translate SQLAlchemy failures into StoreUnavailable. No retries here."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.warning("Store call failed op=%s error=%s", fn.__name__, type(exc).__name__)
            raise StoreUnavailable(f"store operation {fn.__name__} failed") from exc

    return wrapper


class SqlAlchemyStore:
    """
    PermissionStore backed by a SQLAlchemy Session.

    Reads never flush pending state on their own behalf and never commit. The
    two writes (patch_membership, append_audit_entry) flush so the caller sees
    ids immediately; committing stays with the caller's unit of work. The audit
    insert runs in a savepoint so its failure leaves the caller's work intact.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # ---- Reads --------------------------------------------------------------------------

    @_store_call
    def get_membership(self, user_id: str, organization_id: int) -> Membership | None:
        return self._session.execute(
            select(Membership).where(
                Membership.organization_id == organization_id,
                Membership.user_id == user_id,
            )
        ).scalar_one_or_none()

    @_store_call
    def get_membership_by_id(self, membership_id: int) -> Membership | None:
        return self._session.get(Membership, membership_id)

    @_store_call
    def get_organization(self, organization_id: int) -> Organization | None:
        return self._session.get(Organization, organization_id)

    @_store_call
    def get_tier(self, tier_id: int) -> SubscriptionTier | None:
        return self._session.get(SubscriptionTier, tier_id)

    @_store_call
    def list_active_addons(self, organization_id: int, now: datetime) -> list[AddonGrant]:
        stmt = (
            select(AddonGrant)
            .where(
                AddonGrant.organization_id == organization_id,
                AddonGrant.is_active.is_(True),
                or_(AddonGrant.expires_at.is_(None), AddonGrant.expires_at > now),
            )
            .order_by(AddonGrant.id)
        )
        return list(self._session.scalars(stmt).all())

    @_store_call
    def list_role_assignments(self, membership_id: int) -> list[RoleAssignment]:
        stmt = select(RoleAssignment).where(RoleAssignment.membership_id == membership_id).order_by(RoleAssignment.id)
        return list(self._session.scalars(stmt).all())

    @_store_call
    def get_role(self, role_id: int) -> Role | None:
        return self._session.get(Role, role_id)

    @_store_call
    def list_active_overrides(self, membership_id: int, now: datetime) -> list[PermissionOverride]:
        stmt = (
            select(PermissionOverride)
            .where(
                PermissionOverride.membership_id == membership_id,
                or_(PermissionOverride.expires_at.is_(None), PermissionOverride.expires_at > now),
            )
            .order_by(PermissionOverride.id)
        )
        return list(self._session.scalars(stmt).all())

    @_store_call
    def get_permission(self, permission_id: int) -> Permission | None:
        return self._session.get(Permission, permission_id)

    # ---- Writes -------------------------------------------------------------------------

    @_store_call
    def patch_membership(
        self,
        membership_id: int,
        *,
        computed_permissions: int,
        permissions_last_computed_at: datetime,
    ) -> None:
        self._session.execute(
            update(Membership)
            .where(Membership.id == membership_id)
            .values(
                computed_permissions=computed_permissions,
                permissions_last_computed_at=permissions_last_computed_at,
            )
            .execution_options(synchronize_session="fetch")
        )
        self._session.flush()

    @_store_call
    def append_audit_entry(self, entry: AuditEntry) -> int:
        # Savepoint: a failed insert only undoes the audit row, never the
        # caller's pending mutation.
        try:
            with self._session.begin_nested():
                self._session.add(entry)
        except SQLAlchemyError:
            if entry in self._session:
                self._session.expunge(entry)
            raise
        return entry.id
