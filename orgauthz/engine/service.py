"""
Caller-facing permission API.

The engine answers "does user U have permission P in organization O"; it does
not enforce anything. Single-code checks resolve the whole mask and test one
bit, since every source returns whole masks cheaply.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
import logging

from sqlalchemy.orm import Session

from orgauthz.clock import utcnow
from orgauthz.engine.cache import DEFAULT_TTL, ResolutionCache
from orgauthz.engine.resolver import PermissionResolver
from orgauthz.errors import NotAuthenticated
from orgauthz.permissions.bitmask import test_bit
from orgauthz.permissions.registry import PermissionRegistry
from orgauthz.store.base import PermissionStore
from orgauthz.store.sqlalchemy_store import SqlAlchemyStore

logger = logging.getLogger(__name__)


def _require_user(user_id: str | None) -> str:
    if user_id is None or not str(user_id).strip():
        raise NotAuthenticated("no user identity")
    return str(user_id)


class PermissionService:
    def __init__(self, cache: ResolutionCache, registry: PermissionRegistry) -> None:
        self._cache = cache
        self._registry = registry

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    @property
    def registry(self) -> PermissionRegistry:
        return self._registry

    def get_mask(self, user_id: str | None, organization_id: int) -> int:
        return self._cache.get_effective_permissions(_require_user(user_id), organization_id)

    def check_permission(self, user_id: str | None, organization_id: int, code: str) -> bool:
        user = _require_user(user_id)
        pos = self._registry.position_of(code)
        if pos is None:
            logger.info("Unknown permission code checked code=%s organization_id=%s", code, organization_id)
            return False
        return test_bit(self._cache.get_effective_permissions(user, organization_id), pos)

    def get_all_permissions(self, user_id: str | None, organization_id: int) -> dict[str, bool]:
        mask = self.get_mask(user_id, organization_id)
        return {code: test_bit(mask, pos) for code, pos in self._registry.items()}

    def refresh_and_store(self, membership_id: int) -> int:
        return self._cache.refresh_and_store(membership_id)


def build_service(
    store: PermissionStore,
    registry: PermissionRegistry,
    *,
    ttl: timedelta = DEFAULT_TTL,
    clock: Callable[[], datetime] = utcnow,
) -> PermissionService:
    """Wire resolver -> cache -> service over one store."""
    resolver = PermissionResolver(store, registry, clock=clock)
    cache = ResolutionCache(resolver, store, ttl=ttl, clock=clock)
    return PermissionService(cache, registry)


def service_for_session(
    db: Session,
    registry: PermissionRegistry,
    *,
    ttl: timedelta = DEFAULT_TTL,
    clock: Callable[[], datetime] = utcnow,
) -> PermissionService:
    return build_service(SqlAlchemyStore(db), registry, ttl=ttl, clock=clock)
