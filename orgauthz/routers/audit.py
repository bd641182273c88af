from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.models import AuditEntry
from orgauthz.schemas.permissions import AuditEntryOut
from orgauthz.security.dependencies import require_permission

router = APIRouter(tags=["audit"])


@router.get(
    "/organizations/{organization_id}/audit",
    response_model=list[AuditEntryOut],
    dependencies=[Depends(require_permission("org.settings"))],
)
def list_audit_entries(organization_id: int, limit: int = 100, db: Session = Depends(get_db)) -> list[AuditEntry]:
    stmt = (
        select(AuditEntry)
        .where(AuditEntry.organization_id == organization_id)
        .order_by(AuditEntry.id.desc())
        .limit(min(max(limit, 1), 500))
    )
    return list(db.scalars(stmt).all())
