"""Tests for the resolution cache (read path vs explicit refresh)."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from orgauthz.engine.cache import ResolutionCache
from orgauthz.engine.resolver import PermissionResolver
from orgauthz.errors import MembershipNotFound


@pytest.fixture
def cache(store, registry, clock):
    return ResolutionCache(PermissionResolver(store, registry, clock=clock), store, clock=clock)


def test_refresh_persists_mask_and_timestamp(build, cache, clock):
    org = build.org(base=0b0011)
    member = build.member(org)

    assert cache.refresh_and_store(member.id) == 0b0011
    assert member.computed_permissions == 0b0011
    assert member.permissions_last_computed_at == clock.now


def test_fresh_cache_hides_changes_until_ttl(build, cache, clock):
    org = build.org(base=0b0001)
    member = build.member(org)
    cache.refresh_and_store(member.id)

    build.assign(member, build.role(org, 0b1000))
    clock.advance(minutes=4, seconds=59)
    assert cache.get_effective_permissions("u-1", org.id) == 0b0001

    clock.advance(seconds=1)
    assert cache.get_effective_permissions("u-1", org.id) == 0b1001


def test_stale_read_does_not_persist(build, cache, clock):
    org = build.org(base=0b0001)
    member = build.member(org)
    cache.refresh_and_store(member.id)
    build.assign(member, build.role(org, 0b0100))
    clock.advance(minutes=10)

    assert cache.get_effective_permissions("u-1", org.id) == 0b0101
    assert member.computed_permissions == 0b0001
    assert member.permissions_last_computed_at == clock.now - timedelta(minutes=10)


def test_explicit_refresh_reflects_change_immediately(build, cache):
    org = build.org(base=0b0001)
    member = build.member(org)
    cache.refresh_and_store(member.id)
    build.assign(member, build.role(org, 0b0100))

    assert cache.get_effective_permissions("u-1", org.id) == 0b0001
    cache.refresh_and_store(member.id)
    assert cache.get_effective_permissions("u-1", org.id) == 0b0101


def test_never_computed_membership_is_resolved(build, cache):
    org = build.org(base=0b0110)
    build.member(org)

    assert cache.get_effective_permissions("u-1", org.id) == 0b0110


def test_fresh_hit_does_not_call_resolver(registry, clock):
    membership = MagicMock(
        id=7,
        status="active",
        computed_permissions=0b1010,
        permissions_last_computed_at=clock.now - timedelta(minutes=1),
    )
    store = MagicMock()
    store.get_membership.return_value = membership
    resolver = MagicMock(spec=PermissionResolver)
    cache = ResolutionCache(resolver, store, clock=clock)

    assert cache.get_effective_permissions("u-1", 1) == 0b1010
    resolver.resolve_membership.assert_not_called()
    store.patch_membership.assert_not_called()


def test_inactive_member_gets_zero_even_with_cached_mask(build, cache, seeded_session):
    org = build.org(base=0b0111)
    member = build.member(org)
    cache.refresh_and_store(member.id)
    member.status = "suspended"
    seeded_session.flush()

    assert cache.get_effective_permissions("u-1", org.id) == 0


def test_refresh_of_suspended_member_stores_zero(build, cache):
    org = build.org(base=0b0111)
    member = build.member(org, status="suspended")

    assert cache.refresh_and_store(member.id) == 0
    assert member.computed_permissions == 0
    assert member.permissions_last_computed_at is not None


def test_refresh_unknown_membership_raises(cache):
    with pytest.raises(MembershipNotFound):
        cache.refresh_and_store(123456)


def test_custom_ttl(build, store, registry, clock):
    cache = ResolutionCache(
        PermissionResolver(store, registry, clock=clock),
        store,
        ttl=timedelta(seconds=30),
        clock=clock,
    )
    org = build.org(base=0b1)
    member = build.member(org)
    cache.refresh_and_store(member.id)

    assert cache.is_fresh(member)
    clock.advance(seconds=30)
    assert not cache.is_fresh(member)


def test_timestamp_ahead_of_clock_is_stale(build, cache, clock, seeded_session):
    org = build.org(base=0b1)
    member = build.member(org)
    cache.refresh_and_store(member.id)
    member.permissions_last_computed_at = clock.now + timedelta(hours=1)
    seeded_session.flush()
    build.assign(member, build.role(org, 0b10))

    assert not cache.is_fresh(member)
    assert cache.get_effective_permissions("u-1", org.id) == 0b11
