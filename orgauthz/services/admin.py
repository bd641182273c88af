"""
Permission-affecting mutations.

Every mutation here works inside the caller's session (no commit), records an
audit entry, and then refreshes the persisted cache of every membership it
affects, so readers see the change without waiting for the TTL.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.audit import AuditAction, AuditRecorder, AuditTarget
from orgauthz.clock import utcnow
from orgauthz.engine.cache import ResolutionCache
from orgauthz.engine.resolver import PermissionResolver
from orgauthz.errors import MembershipNotFound, RoleNotAssignable
from orgauthz.models import (
    AddonGrant,
    Membership,
    Organization,
    Permission,
    PermissionOverride,
    Role,
    RoleAssignment,
    SubscriptionTier,
)
from orgauthz.permissions.bitmask import MAX_MASK, clear_bit, mask_of, set_bit
from orgauthz.permissions.registry import PermissionRegistry
from orgauthz.settings import get_settings
from orgauthz.store.sqlalchemy_store import SqlAlchemyStore

logger = logging.getLogger(__name__)


# (type, name, description, color, mask, position, assignable, default)
SYSTEM_ROLES: tuple[tuple[str, str, str, str, int, int, bool, bool], ...] = (
    ("owner", "Owner", "Organization owner with full control", "#e74c3c", MAX_MASK, 0, False, False),
    ("admin", "Admin", "Administrator with most privileges", "#3498db", mask_of(range(19)), 1, True, False),
    ("moderator", "Moderator", "Can manage members and content", "#2ecc71", mask_of(range(13)), 2, True, False),
    ("member", "Member", "Default member role", "#95a5a6", mask_of(range(3)), 3, True, True),
)


def _popcount(mask: int) -> int:
    return bin(mask).count("1")


class PermissionAdmin:
    """
    Administrative write operations on organizations, roles, overrides and add-ons.

    Usage:
        admin = PermissionAdmin(db, registry)
        org = admin.create_organization(name="Acme", slug="acme", owner_id="u-1")
        db.commit()
    """

    def __init__(
        self,
        db: Session,
        registry: PermissionRegistry,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._registry = registry
        self._clock = clock
        store = SqlAlchemyStore(db)
        self._recorder = AuditRecorder(store)
        self._cache = ResolutionCache(PermissionResolver(store, registry, clock=clock), store, clock=clock)

    @property
    def recorder(self) -> AuditRecorder:
        return self._recorder

    # ---- Lookups --------------------------------------------------------------------

    def _membership(self, membership_id: int) -> Membership:
        membership = self._db.get(Membership, membership_id)
        if membership is None:
            raise MembershipNotFound(membership_id)
        return membership

    def _organization(self, organization_id: int) -> Organization:
        org = self._db.get(Organization, organization_id)
        if org is None:
            raise ValueError(f"organization {organization_id} not found")
        return org

    def _permission(self, code: str) -> Permission:
        if code not in self._registry:
            raise ValueError(f"unknown permission code {code!r}")
        permission = self._db.execute(select(Permission).where(Permission.code == code)).scalar_one_or_none()
        if permission is None:
            raise ValueError(f"permission {code!r} is not in the catalog; run init_db")
        return permission

    def _tier(self, slug: str) -> SubscriptionTier:
        tier = self._db.execute(select(SubscriptionTier).where(SubscriptionTier.slug == slug)).scalar_one_or_none()
        if tier is None:
            raise ValueError(f"subscription tier {slug!r} not found; seed the database")
        return tier

    def _org_role(self, membership: Membership, role_id: int) -> Role:
        role = self._db.get(Role, role_id)
        if role is None or role.organization_id != membership.organization_id:
            raise ValueError(f"role {role_id} does not belong to organization {membership.organization_id}")
        return role

    def _refresh_organization(self, organization_id: int) -> None:
        member_ids = self._db.scalars(
            select(Membership.id).where(
                Membership.organization_id == organization_id,
                Membership.status == "active",
            )
        ).all()
        for membership_id in member_ids:
            self._cache.refresh_and_store(membership_id)

    # ---- Organizations and members --------------------------------------------------

    def create_organization(
        self,
        *,
        name: str,
        slug: str,
        owner_id: str,
        tier_slug: str | None = None,
        description: str | None = None,
    ) -> Organization:
        """
        Create an organization with its four system roles and an active owner member.

        The organization starts with a zero custom mask. The owner holds the
        owner role, whose mask has every bit set.
        Without `tier_slug` the configured default tier (`AUTHZ_DEFAULT_TIER_SLUG`) is used.
        """

        existing = self._db.execute(select(Organization.id).where(Organization.slug == slug)).first()
        if existing is not None:
            raise ValueError(f"organization slug {slug!r} already exists")

        tier_slug = tier_slug or get_settings().default_tier_slug
        tier = self._tier(tier_slug)
        now = self._clock()
        org = Organization(
            name=name,
            slug=slug,
            description=description,
            owner_id=owner_id,
            subscription_tier_id=tier.id,
            subscription_status="active",
            custom_permissions=0,
            created_at=now,
        )
        self._db.add(org)
        self._db.flush()

        roles: dict[str, Role] = {}
        for role_type, role_name, role_desc, color, mask, position, assignable, default in SYSTEM_ROLES:
            role = Role(
                organization_id=org.id,
                name=role_name,
                description=role_desc,
                color=color,
                permissions=mask,
                position=position,
                is_system_role=True,
                system_role_type=role_type,
                is_assignable=assignable,
                is_default=default,
            )
            self._db.add(role)
            roles[role_type] = role

        membership = Membership(
            organization_id=org.id,
            user_id=owner_id,
            status="active",
            invited_at=now,
            joined_at=now,
            computed_permissions=0,
        )
        self._db.add(membership)
        self._db.flush()

        self._db.add(RoleAssignment(membership_id=membership.id, role_id=roles["owner"].id, assigned_at=now))
        self._db.flush()

        self._cache.refresh_and_store(membership.id)
        logger.info("Created organization id=%s slug=%s tier=%s", org.id, slug, tier_slug)
        return org

    def invite_member(self, organization_id: int, user_id: str, *, actor_id: str) -> Membership:
        """Invite a user. Invited members hold the default role but resolve to zero until they join."""

        self._organization(organization_id)
        membership = Membership(
            organization_id=organization_id,
            user_id=user_id,
            status="invited",
            invited_by=actor_id,
            invited_at=self._clock(),
            computed_permissions=0,
        )
        self._db.add(membership)
        self._db.flush()

        default_role = self._db.execute(
            select(Role).where(Role.organization_id == organization_id, Role.is_default.is_(True))
        ).scalars().first()
        if default_role is not None:
            self._db.add(RoleAssignment(membership_id=membership.id, role_id=default_role.id, assigned_by=actor_id))
            self._db.flush()

        self._recorder.record(AuditAction.MEMBER_INVITED, organization_id, actor_id, AuditTarget(user_id=user_id))
        return membership

    def set_member_status(self, membership_id: int, status: str, *, actor_id: str) -> Membership:
        """Transition a membership (invited -> active, active -> suspended/left, ...)."""

        if status not in ("invited", "active", "suspended", "left"):
            raise ValueError(f"invalid membership status {status!r}")
        membership = self._membership(membership_id)
        membership.status = status
        if status == "active" and membership.joined_at is None:
            membership.joined_at = self._clock()
        self._db.flush()

        action = AuditAction.MEMBER_JOINED if status == "active" else AuditAction.MEMBER_REMOVED
        if status in ("active", "left"):
            self._recorder.record(
                action,
                membership.organization_id,
                actor_id,
                AuditTarget(user_id=membership.user_id),
                {"status": status},
            )
        self._cache.refresh_and_store(membership_id)
        return membership

    # ---- Roles ----------------------------------------------------------------------

    def create_role(
        self,
        organization_id: int,
        *,
        name: str,
        codes: list[str],
        actor_id: str,
        position: int | None = None,
        description: str | None = None,
    ) -> Role:
        self._organization(organization_id)
        if position is None:
            existing = self._db.scalars(select(Role.position).where(Role.organization_id == organization_id)).all()
            position = max(existing, default=-1) + 1
        role = Role(
            organization_id=organization_id,
            name=name,
            description=description,
            permissions=self._registry.mask_for(codes),
            position=position,
            is_system_role=False,
            is_assignable=True,
        )
        self._db.add(role)
        self._db.flush()
        self._recorder.record(
            AuditAction.ROLE_CREATED, organization_id, actor_id, AuditTarget(role_id=role.id), {"codes": list(codes)}
        )
        return role

    def delete_role(self, role_id: int, *, actor_id: str) -> None:
        role = self._db.get(Role, role_id)
        if role is None:
            raise ValueError(f"role {role_id} not found")
        if role.is_system_role:
            raise RoleNotAssignable(f"system role {role.name!r} cannot be deleted")

        affected = self._db.scalars(select(RoleAssignment.membership_id).where(RoleAssignment.role_id == role_id)).all()
        for assignment in self._db.scalars(select(RoleAssignment).where(RoleAssignment.role_id == role_id)).all():
            self._db.delete(assignment)
        organization_id = role.organization_id
        self._db.delete(role)
        self._db.flush()

        self._recorder.record(AuditAction.ROLE_DELETED, organization_id, actor_id, AuditTarget(role_id=role_id))
        for membership_id in affected:
            self._cache.refresh_and_store(membership_id)

    def assign_role(self, membership_id: int, role_id: int, *, actor_id: str) -> RoleAssignment:
        membership = self._membership(membership_id)
        role = self._org_role(membership, role_id)
        if not role.is_assignable:
            raise RoleNotAssignable(f"role {role.name!r} is not assignable")

        assignment = self._db.execute(
            select(RoleAssignment).where(
                RoleAssignment.membership_id == membership_id,
                RoleAssignment.role_id == role_id,
            )
        ).scalar_one_or_none()
        if assignment is None:
            assignment = RoleAssignment(
                membership_id=membership_id,
                role_id=role_id,
                assigned_by=actor_id,
                assigned_at=self._clock(),
            )
            self._db.add(assignment)
            self._db.flush()

        self._recorder.record(
            AuditAction.ROLE_ASSIGNED,
            membership.organization_id,
            actor_id,
            AuditTarget(user_id=membership.user_id, role_id=role_id),
        )
        self._cache.refresh_and_store(membership_id)
        return assignment

    def unassign_role(self, membership_id: int, role_id: int, *, actor_id: str) -> None:
        membership = self._membership(membership_id)
        role = self._org_role(membership, role_id)
        if role.system_role_type == "owner":
            raise RoleNotAssignable("the owner role cannot be removed through role management")

        assignment = self._db.execute(
            select(RoleAssignment).where(
                RoleAssignment.membership_id == membership_id,
                RoleAssignment.role_id == role_id,
            )
        ).scalar_one_or_none()
        if assignment is None:
            return
        self._db.delete(assignment)
        self._db.flush()

        self._recorder.record(
            AuditAction.ROLE_UNASSIGNED,
            membership.organization_id,
            actor_id,
            AuditTarget(user_id=membership.user_id, role_id=role_id),
        )
        self._cache.refresh_and_store(membership_id)

    # ---- Overrides ------------------------------------------------------------------

    def add_override(
        self,
        membership_id: int,
        code: str,
        *,
        allow: bool,
        actor_id: str,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> PermissionOverride:
        membership = self._membership(membership_id)
        permission = self._permission(code)
        override = PermissionOverride(
            membership_id=membership_id,
            permission_id=permission.id,
            allow=allow,
            granted_by=actor_id,
            reason=reason,
            expires_at=expires_at,
            created_at=self._clock(),
        )
        self._db.add(override)
        self._db.flush()

        self._recorder.record(
            AuditAction.OVERRIDE_ADDED,
            membership.organization_id,
            actor_id,
            AuditTarget(user_id=membership.user_id, permission_id=permission.id),
            {"code": code, "allow": allow, "reason": reason},
        )
        self._cache.refresh_and_store(membership_id)
        return override

    def remove_override(self, override_id: int, *, actor_id: str) -> None:
        override = self._db.get(PermissionOverride, override_id)
        if override is None:
            return
        membership = self._membership(override.membership_id)
        permission_id = override.permission_id
        self._db.delete(override)
        self._db.flush()

        self._recorder.record(
            AuditAction.OVERRIDE_REMOVED,
            membership.organization_id,
            actor_id,
            AuditTarget(user_id=membership.user_id, permission_id=permission_id),
        )
        self._cache.refresh_and_store(membership.id)

    # ---- Organization-wide sources ---------------------------------------------------

    def purchase_addon(
        self,
        organization_id: int,
        code: str,
        *,
        actor_id: str,
        expires_at: datetime | None = None,
        price_paid: float | None = None,
    ) -> AddonGrant:
        self._organization(organization_id)
        permission = self._permission(code)
        grant = AddonGrant(
            organization_id=organization_id,
            permission_id=permission.id,
            purchased_by=actor_id,
            purchased_at=self._clock(),
            expires_at=expires_at,
            price_paid=price_paid,
            is_active=True,
        )
        self._db.add(grant)
        self._db.flush()

        self._recorder.record(
            AuditAction.ADDON_PURCHASED,
            organization_id,
            actor_id,
            AuditTarget(permission_id=permission.id),
            {"code": code},
        )
        self._refresh_organization(organization_id)
        return grant

    def cancel_addon(self, grant_id: int, *, actor_id: str) -> None:
        grant = self._db.get(AddonGrant, grant_id)
        if grant is None or not grant.is_active:
            return
        grant.is_active = False
        self._db.flush()

        self._recorder.record(
            AuditAction.ADDON_CANCELLED,
            grant.organization_id,
            actor_id,
            AuditTarget(permission_id=grant.permission_id),
        )
        self._refresh_organization(grant.organization_id)

    def grant_custom_permission(self, organization_id: int, code: str, *, actor_id: str) -> int:
        return self._set_custom(organization_id, code, grant=True, actor_id=actor_id)

    def revoke_custom_permission(self, organization_id: int, code: str, *, actor_id: str) -> int:
        return self._set_custom(organization_id, code, grant=False, actor_id=actor_id)

    def _set_custom(self, organization_id: int, code: str, *, grant: bool, actor_id: str) -> int:
        org = self._organization(organization_id)
        permission = self._permission(code)
        pos = self._registry.as_dict()[code]
        org.custom_permissions = (set_bit if grant else clear_bit)(org.custom_permissions, pos)
        self._db.flush()

        self._recorder.record(
            AuditAction.PERMISSION_GRANTED if grant else AuditAction.PERMISSION_REVOKED,
            organization_id,
            actor_id,
            AuditTarget(permission_id=permission.id),
            {"code": code, "scope": "organization"},
        )
        self._refresh_organization(organization_id)
        return org.custom_permissions

    def change_tier(self, organization_id: int, tier_slug: str, *, actor_id: str) -> Organization:
        org = self._organization(organization_id)
        new_tier = self._tier(tier_slug)
        old_tier = self._db.get(SubscriptionTier, org.subscription_tier_id)
        if old_tier is not None and old_tier.id == new_tier.id:
            return org

        org.subscription_tier_id = new_tier.id
        self._db.flush()

        old_count = _popcount(old_tier.base_permissions) if old_tier is not None else 0
        if _popcount(new_tier.base_permissions) >= old_count:
            action = AuditAction.TIER_UPGRADED
        else:
            action = AuditAction.TIER_DOWNGRADED
        self._recorder.record(
            action,
            organization_id,
            actor_id,
            metadata={"from": old_tier.slug if old_tier is not None else None, "to": new_tier.slug},
        )
        self._refresh_organization(organization_id)
        return org
