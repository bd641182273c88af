"""
Pytest fixtures for the test suite.

Data-layer and engine tests use an in-memory SQLite engine and a session that
rolls back after each test, so tests do not affect each other. `build` gives a
small builder for organizations, memberships, roles, overrides and add-ons on
top of the seeded permission catalog.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from itertools import count
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from orgauthz.db.init_db import seed_catalog
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
from orgauthz.permissions.registry import PermissionRegistry, RegistryFile, load_registry_file
from orgauthz.store.sqlalchemy_store import SqlAlchemyStore


TEST_DB_URL = "sqlite:///:memory:"
REGISTRY_PATH = Path(__file__).resolve().parents[1] / "config" / "permissions.yaml"


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from orgauthz import models  # noqa: F401
    from orgauthz.db.base import Base

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    The outer transaction is rolled back so the next test gets a clean state,
    even when the code under test calls commit().
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="session")
def registry_file() -> RegistryFile:
    return load_registry_file(REGISTRY_PATH)


@pytest.fixture(scope="session")
def registry(registry_file) -> PermissionRegistry:
    return registry_file.registry


@pytest.fixture
def seeded_session(db_session, registry_file):
    seed_catalog(db_session, registry_file)
    db_session.commit()
    return db_session


@pytest.fixture
def store(seeded_session) -> SqlAlchemyStore:
    return SqlAlchemyStore(seeded_session)


class FakeClock:
    """Controllable clock; naive UTC like the rest of the engine."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0))


class Builder:
    """Inserts engine entities directly, bypassing the admin mutations."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self._seq = count(1)

    def _flush(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def permission(self, code: str) -> Permission:
        return self.db.execute(select(Permission).where(Permission.code == code)).scalar_one()

    def tier(self, base: int = 0) -> SubscriptionTier:
        n = next(self._seq)
        return self._flush(SubscriptionTier(slug=f"tier-{n}", name=f"Tier {n}", base_permissions=base))

    def org(self, *, base: int = 0, custom: int = 0, tier: SubscriptionTier | None = None) -> Organization:
        tier = tier or self.tier(base)
        n = next(self._seq)
        return self._flush(
            Organization(
                name=f"Org {n}",
                slug=f"org-{n}",
                owner_id="owner",
                subscription_tier_id=tier.id,
                custom_permissions=custom,
            )
        )

    def member(self, org: Organization, user_id: str = "u-1", status: str = "active") -> Membership:
        return self._flush(Membership(organization_id=org.id, user_id=user_id, status=status))

    def role(self, org: Organization, mask: int, **kwargs) -> Role:
        n = next(self._seq)
        kwargs.setdefault("name", f"role-{n}")
        return self._flush(Role(organization_id=org.id, permissions=mask, **kwargs))

    def assign(self, membership: Membership, role: Role | int) -> RoleAssignment:
        role_id = role if isinstance(role, int) else role.id
        return self._flush(RoleAssignment(membership_id=membership.id, role_id=role_id))

    def override(
        self,
        membership: Membership,
        code: str,
        *,
        allow: bool,
        expires_at: datetime | None = None,
    ) -> PermissionOverride:
        return self._flush(
            PermissionOverride(
                membership_id=membership.id,
                permission_id=self.permission(code).id,
                allow=allow,
                expires_at=expires_at,
            )
        )

    def addon(
        self,
        org: Organization,
        code: str,
        *,
        expires_at: datetime | None = None,
        is_active: bool = True,
    ) -> AddonGrant:
        return self._flush(
            AddonGrant(
                organization_id=org.id,
                permission_id=self.permission(code).id,
                expires_at=expires_at,
                is_active=is_active,
            )
        )


@pytest.fixture
def build(seeded_session) -> Builder:
    return Builder(seeded_session)
