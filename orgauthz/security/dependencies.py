from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.engine.service import PermissionService, service_for_session
from orgauthz.errors import MembershipNotFound, NotAuthenticated
from orgauthz.permissions.registry import PermissionRegistry
from orgauthz.security.auth import extract_user_id
from orgauthz.settings import get_settings
from orgauthz.store.sqlalchemy_store import SqlAlchemyStore


def get_registry(request: Request) -> PermissionRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("Permission registry not loaded. Did app startup run?")
    return registry


def get_permission_service(
    db: Session = Depends(get_db),
    registry: PermissionRegistry = Depends(get_registry),
) -> PermissionService:
    ttl = timedelta(seconds=get_settings().cache_ttl_seconds)
    return service_for_session(db, registry, ttl=ttl)


def get_current_user_id(request: Request) -> str:
    user_id = extract_user_id(request)
    if user_id is None:
        raise NotAuthenticated("Authentication required")
    return user_id


def require_permission(code: str) -> Callable[..., None]:
    """
    Route guard: the caller must hold ``code`` in the path's organization.

    The engine itself never enforces; this is the HTTP layer acting as a caller.
    Any failure to resolve (store down) propagates and is answered with 503,
    never with access.
    """

    def dependency(
        organization_id: int,
        user_id: str = Depends(get_current_user_id),
        service: PermissionService = Depends(get_permission_service),
    ) -> None:
        if not service.check_permission(user_id, organization_id, code):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission {code!r}",
            )

    return dependency


MEMBERSHIP_MANAGE_PERMISSION = "roles.manage"


def authorize_membership_refresh(
    membership_id: int,
    user_id: str = Depends(get_current_user_id),
    service: PermissionService = Depends(get_permission_service),
    db: Session = Depends(get_db),
) -> None:
    """
    Route guard for refreshing a membership's cached mask.

    Allowed for the membership's own user, or for a caller holding
    `roles.manage` in the membership's organization. Unknown ids are 404.
    """

    membership = SqlAlchemyStore(db).get_membership_by_id(membership_id)
    if membership is None:
        raise MembershipNotFound(membership_id)
    if membership.user_id == user_id:
        return
    if not service.check_permission(user_id, membership.organization_id, MEMBERSHIP_MANAGE_PERMISSION):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing permission {MEMBERSHIP_MANAGE_PERMISSION!r}",
        )
