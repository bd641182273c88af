"""
Resolution cache: bounded-staleness mask cached on the membership row.

Read path (`get_effective_permissions`) never writes. When the cached value is
fresh (younger than the TTL) it is returned without touching the resolver;
otherwise the mask is recomputed and returned, but not persisted. Persisting
is a separate, explicit write (`refresh_and_store`) that callers invoke after
changing roles, overrides, add-ons or tiers.

Two concurrent refreshes of one membership race; last writer wins. Both
computed from a recent snapshot, so either result is valid.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
import logging

from orgauthz.clock import utcnow
from orgauthz.engine.resolver import PermissionResolver
from orgauthz.errors import MembershipNotFound
from orgauthz.models import Membership
from orgauthz.permissions.bitmask import EMPTY_MASK
from orgauthz.store.base import PermissionStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=5)


class ResolutionCache:
    def __init__(
        self,
        resolver: PermissionResolver,
        store: PermissionStore,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def is_fresh(self, membership: Membership, now: datetime | None = None) -> bool:
        computed_at = membership.permissions_last_computed_at
        if computed_at is None:
            return False
        now = now or self._clock()
        # A timestamp ahead of our clock (skew between writers) is not trusted.
        if computed_at > now:
            return False
        return now - computed_at < self._ttl

    def get_effective_permissions(self, user_id: str, organization_id: int) -> int:
        """Cached mask when fresh, otherwise a recomputed (unpersisted) one."""

        membership = self._store.get_membership(user_id, organization_id)
        if membership is None or membership.status != "active":
            return EMPTY_MASK

        if self.is_fresh(membership):
            logger.debug("Permission cache hit membership_id=%s", membership.id)
            return membership.computed_permissions

        logger.debug("Permission cache miss membership_id=%s", membership.id)
        return self._resolver.resolve_membership(membership)

    def refresh_and_store(self, membership_id: int) -> int:
        """
        Recompute the membership's mask and persist it with the current time.

        Inactive memberships (invited/suspended/left) are refreshed too; they
        persist the zero mask.
        """

        membership = self._store.get_membership_by_id(membership_id)
        if membership is None:
            raise MembershipNotFound(membership_id)

        mask = self._resolver.resolve_membership(membership)
        self._store.patch_membership(
            membership_id,
            computed_permissions=mask,
            permissions_last_computed_at=self._clock(),
        )
        logger.info("Persisted permission cache membership_id=%s status=%s", membership_id, membership.status)
        return mask
