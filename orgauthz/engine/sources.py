"""
Source readers: one read path per permission source.

Each reader returns the contribution of a single source. The four entitlement
readers return masks; the override reader returns an ordered list of signed
operations because overrides are the only source that can revoke.

Dangling references (an addon or override pointing at a permission that no
longer exists or is not in the registry, an assignment pointing at a deleted
role) contribute nothing and are never raised. StoreUnavailable from the store
is never caught here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from orgauthz.models import Membership, Organization
from orgauthz.permissions.bitmask import EMPTY_MASK, set_bit
from orgauthz.permissions.registry import PermissionRegistry
from orgauthz.store.base import PermissionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideOp:
    """A single signed override: set ``position`` when allow, clear it otherwise."""

    position: int
    allow: bool


def _permission_position(store: PermissionStore, registry: PermissionRegistry, permission_id: int) -> int | None:
    permission = store.get_permission(permission_id)
    if permission is None:
        logger.debug("Dangling permission reference permission_id=%s", permission_id)
        return None

    pos = registry.position_of(permission.code)
    if pos is None:
        logger.debug("Permission code not in registry code=%s permission_id=%s", permission.code, permission_id)
        return None

    if permission.bit_position != pos:
        logger.warning(
            "Catalog bit disagrees with registry code=%s catalog_bit=%s registry_bit=%s",
            permission.code,
            permission.bit_position,
            pos,
        )
    return pos


def tier_contribution(store: PermissionStore, organization: Organization) -> int:
    tier = store.get_tier(organization.subscription_tier_id)
    if tier is None:
        # Misconfigured organization: tolerated, the tier just grants nothing.
        logger.debug(
            "Organization tier missing organization_id=%s tier_id=%s",
            organization.id,
            organization.subscription_tier_id,
        )
        return EMPTY_MASK
    return tier.base_permissions


def custom_contribution(organization: Organization) -> int:
    return organization.custom_permissions or EMPTY_MASK


def addon_contribution(
    store: PermissionStore,
    registry: PermissionRegistry,
    organization_id: int,
    now: datetime,
) -> int:
    mask = EMPTY_MASK
    for grant in store.list_active_addons(organization_id, now):
        if not grant.is_live(now):
            continue
        pos = _permission_position(store, registry, grant.permission_id)
        if pos is not None:
            mask = set_bit(mask, pos)
    return mask


def role_contribution(store: PermissionStore, membership: Membership) -> int:
    mask = EMPTY_MASK
    for assignment in store.list_role_assignments(membership.id):
        role = store.get_role(assignment.role_id)
        if role is None:
            logger.debug("Dangling role assignment membership_id=%s role_id=%s", membership.id, assignment.role_id)
            continue
        mask |= role.permissions
    return mask


def override_operations(
    store: PermissionStore,
    registry: PermissionRegistry,
    membership: Membership,
    now: datetime,
) -> list[OverrideOp]:
    """Unexpired overrides as signed operations, in the order the store returned them."""

    ops: list[OverrideOp] = []
    for override in store.list_active_overrides(membership.id, now):
        if not override.is_live(now):
            continue
        pos = _permission_position(store, registry, override.permission_id)
        if pos is not None:
            ops.append(OverrideOp(position=pos, allow=bool(override.allow)))
    return ops
