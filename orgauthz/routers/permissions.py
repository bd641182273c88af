from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.engine.service import PermissionService
from orgauthz.schemas.permissions import PermissionCheckOut, RefreshOut
from orgauthz.security.dependencies import (
    authorize_membership_refresh,
    get_current_user_id,
    get_permission_service,
)

router = APIRouter(tags=["permissions"])


@router.get("/organizations/{organization_id}/permissions", response_model=dict[str, bool])
def list_permissions(
    organization_id: int,
    user_id: str = Depends(get_current_user_id),
    service: PermissionService = Depends(get_permission_service),
) -> dict[str, bool]:
    return service.get_all_permissions(user_id, organization_id)


@router.get("/organizations/{organization_id}/permissions/{code}", response_model=PermissionCheckOut)
def check_permission(
    organization_id: int,
    code: str,
    user_id: str = Depends(get_current_user_id),
    service: PermissionService = Depends(get_permission_service),
) -> PermissionCheckOut:
    return PermissionCheckOut(code=code, granted=service.check_permission(user_id, organization_id, code))


@router.post(
    "/memberships/{membership_id}/refresh",
    response_model=RefreshOut,
    dependencies=[Depends(authorize_membership_refresh)],
)
def refresh_membership(
    membership_id: int,
    service: PermissionService = Depends(get_permission_service),
    db: Session = Depends(get_db),
) -> RefreshOut:
    # Write path: the only route that persists the cache.
    mask = service.refresh_and_store(membership_id)
    db.commit()
    return RefreshOut(membership_id=membership_id, permissions=mask)
