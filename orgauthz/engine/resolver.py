"""
Permission resolver: folds the five permission sources into one mask.

Order (fixed):
1. Membership lookup. Absent or not active -> zero mask, no further reads.
2. tier | custom
3. | addons
4. | roles
5. Overrides: every allow is applied before any deny, so a deny always wins,
   whatever order the store returned the records in.

The resolver is a pure function of current store state. It keeps no memory
between calls; staleness tolerance lives in the cache layer. Store failures
propagate (fail closed): a partial mask could silently drop a deny.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
import logging

from orgauthz.clock import utcnow
from orgauthz.engine import sources
from orgauthz.engine.sources import OverrideOp
from orgauthz.models import Membership
from orgauthz.permissions.bitmask import EMPTY_MASK, clear_bit, set_bit
from orgauthz.permissions.registry import PermissionRegistry
from orgauthz.store.base import PermissionStore

logger = logging.getLogger(__name__)


def apply_overrides(mask: int, ops: Iterable[OverrideOp]) -> int:
    """
    Apply signed overrides with deny-wins precedence.

    Allows are applied first, then denies. Order among same-signed operations
    does not matter (set and clear are idempotent).
    """

    ordered = sorted(ops, key=lambda op: not op.allow)
    for op in ordered:
        if op.allow:
            mask = set_bit(mask, op.position)
        else:
            mask = clear_bit(mask, op.position)
    return mask


class PermissionResolver:
    """
    Computes a membership's effective permission mask from the store.

    Usage:
        resolver = PermissionResolver(SqlAlchemyStore(db), registry)
        mask = resolver.resolve("user-1", organization_id)
    """

    def __init__(
        self,
        store: PermissionStore,
        registry: PermissionRegistry,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._clock = clock

    @property
    def registry(self) -> PermissionRegistry:
        return self._registry

    def resolve(self, user_id: str, organization_id: int) -> int:
        membership = self._store.get_membership(user_id, organization_id)
        if membership is None:
            logger.debug("Resolve: no membership user_id=%s organization_id=%s", user_id, organization_id)
            return EMPTY_MASK
        return self.resolve_membership(membership)

    def resolve_membership(self, membership: Membership) -> int:
        if membership.status != "active":
            logger.debug("Resolve: membership %s is %s -> zero mask", membership.id, membership.status)
            return EMPTY_MASK

        organization = self._store.get_organization(membership.organization_id)
        if organization is None:
            logger.debug("Resolve: organization %s missing -> zero mask", membership.organization_id)
            return EMPTY_MASK

        now = self._clock()

        mask = sources.tier_contribution(self._store, organization) | sources.custom_contribution(organization)
        mask |= sources.addon_contribution(self._store, self._registry, organization.id, now)
        mask |= sources.role_contribution(self._store, membership)

        ops = sources.override_operations(self._store, self._registry, membership, now)
        mask = apply_overrides(mask, ops)

        logger.debug(
            "Resolve: membership_id=%s organization_id=%s overrides=%d mask=%#x",
            membership.id,
            organization.id,
            len(ops),
            mask,
        )
        return mask
