"""
HTTP surface tests.

The app is built without running its lifespan; the DB session and registry
are injected through dependency_overrides.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from orgauthz.db.session import get_db
from orgauthz.engine.service import build_service
from orgauthz.errors import StoreUnavailable
from orgauthz.main import create_app
from orgauthz.models import Membership
from orgauthz.permissions.bitmask import MAX_MASK
from orgauthz.security.dependencies import get_permission_service, get_registry
from orgauthz.services.admin import PermissionAdmin


@pytest.fixture
def app(seeded_session, registry):
    app = create_app()

    def _db():
        yield seeded_session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_registry] = lambda: registry
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def org(seeded_session, registry, clock):
    admin = PermissionAdmin(seeded_session, registry, clock=clock)
    org = admin.create_organization(name="Acme", slug="acme", owner_id="owner-1", tier_slug="web")
    membership = admin.invite_member(org.id, "member-1", actor_id="owner-1")
    admin.set_member_status(membership.id, "active", actor_id="member-1")
    seeded_session.commit()
    return org


def _auth(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_id}"}


def test_list_permissions(client, org, registry):
    resp = client.get(f"/organizations/{org.id}/permissions", headers=_auth("member-1"))
    assert resp.status_code == 200
    body = resp.json()
    assert list(body) == list(registry.codes)
    assert body["export.csv"] is True
    assert body["org.settings"] is False


def test_check_single_permission(client, org):
    resp = client.get(f"/organizations/{org.id}/permissions/org.settings", headers=_auth("owner-1"))
    assert resp.status_code == 200
    assert resp.json() == {"code": "org.settings", "granted": True}


def test_unknown_code_is_denied(client, org):
    resp = client.get(f"/organizations/{org.id}/permissions/nope.nope", headers=_auth("owner-1"))
    assert resp.status_code == 200
    assert resp.json()["granted"] is False


def test_missing_identity_is_401(client, org):
    resp = client.get(f"/organizations/{org.id}/permissions")
    assert resp.status_code == 401


def test_malformed_authorization_is_400(client, org):
    resp = client.get(f"/organizations/{org.id}/permissions", headers={"Authorization": "Token abc"})
    assert resp.status_code == 400


def test_refresh_membership(client, org, seeded_session):
    owner = seeded_session.execute(
        select(Membership).where(Membership.organization_id == org.id, Membership.user_id == "owner-1")
    ).scalar_one()

    resp = client.post(f"/memberships/{owner.id}/refresh", headers=_auth("owner-1"))
    assert resp.status_code == 200
    assert resp.json() == {"membership_id": owner.id, "permissions": MAX_MASK}


def _membership_id(db, org, user_id):
    return db.execute(
        select(Membership.id).where(Membership.organization_id == org.id, Membership.user_id == user_id)
    ).scalar_one()


def test_member_cannot_refresh_someone_else(client, org, seeded_session):
    owner_id = _membership_id(seeded_session, org, "owner-1")

    resp = client.post(f"/memberships/{owner_id}/refresh", headers=_auth("member-1"))
    assert resp.status_code == 403

    resp = client.post(f"/memberships/{owner_id}/refresh", headers=_auth("outsider"))
    assert resp.status_code == 403


def test_member_can_refresh_own_membership(client, org, seeded_session):
    member_id = _membership_id(seeded_session, org, "member-1")

    resp = client.post(f"/memberships/{member_id}/refresh", headers=_auth("member-1"))
    assert resp.status_code == 200
    assert resp.json()["permissions"] == 0b11111


def test_role_manager_can_refresh_other_members(client, org, seeded_session):
    member_id = _membership_id(seeded_session, org, "member-1")

    resp = client.post(f"/memberships/{member_id}/refresh", headers=_auth("owner-1"))
    assert resp.status_code == 200


def test_refresh_requires_identity(client, org, seeded_session):
    member_id = _membership_id(seeded_session, org, "member-1")

    assert client.post(f"/memberships/{member_id}/refresh").status_code == 401


def test_refresh_unknown_membership_is_404(client, org):
    resp = client.post("/memberships/999999/refresh", headers=_auth("owner-1"))
    assert resp.status_code == 404


def test_audit_requires_org_settings(client, org):
    resp = client.get(f"/organizations/{org.id}/audit", headers=_auth("member-1"))
    assert resp.status_code == 403

    resp = client.get(f"/organizations/{org.id}/audit", headers=_auth("owner-1"))
    assert resp.status_code == 200
    actions = [entry["action"] for entry in resp.json()]
    assert actions == ["member_joined", "member_invited"]
    assert resp.json()[0]["metadata"] == {"status": "active"}


def test_store_outage_is_503(app, client, org, registry):
    store = MagicMock()
    store.get_membership.side_effect = StoreUnavailable("down")
    app.dependency_overrides[get_permission_service] = lambda: build_service(store, registry)

    resp = client.get(f"/organizations/{org.id}/permissions", headers=_auth("owner-1"))
    assert resp.status_code == 503
