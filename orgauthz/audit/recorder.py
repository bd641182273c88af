"""
Audit recorder: best-effort, append-only log of permission-affecting actions.

A failed audit write is logged at ERROR for operators and otherwise ignored;
it never fails or rolls back the mutation that triggered it. The resolution
path never reads or writes audit entries.
"""

from __future__ import annotations

from dataclasses import dataclass
import enum
import logging
from typing import Any, Mapping

from orgauthz.models import AuditEntry
from orgauthz.store.base import PermissionStore

logger = logging.getLogger(__name__)


class AuditAction(str, enum.Enum):
    ROLE_CREATED = "role_created"
    ROLE_UPDATED = "role_updated"
    ROLE_DELETED = "role_deleted"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_UNASSIGNED = "role_unassigned"
    PERMISSION_GRANTED = "permission_granted"
    PERMISSION_REVOKED = "permission_revoked"
    ADDON_PURCHASED = "addon_purchased"
    ADDON_CANCELLED = "addon_cancelled"
    MEMBER_INVITED = "member_invited"
    MEMBER_JOINED = "member_joined"
    MEMBER_REMOVED = "member_removed"
    TIER_UPGRADED = "tier_upgraded"
    TIER_DOWNGRADED = "tier_downgraded"
    OVERRIDE_ADDED = "override_added"
    OVERRIDE_REMOVED = "override_removed"


@dataclass(frozen=True)
class AuditTarget:
    """What the action was applied to. All fields optional."""

    user_id: str | None = None
    role_id: int | None = None
    permission_id: int | None = None


class AuditRecorder:
    def __init__(self, store: PermissionStore) -> None:
        self._store = store

    def record(
        self,
        action: AuditAction | str,
        organization_id: int | None,
        actor_id: str | None,
        target: AuditTarget | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> int | None:
        """
        Append one audit entry and return its id, or None if the write failed.

        An unknown action string is a programming error and raises ValueError
        before anything is written.
        """

        kind = AuditAction(action)
        target = target or AuditTarget()
        entry = AuditEntry(
            organization_id=organization_id,
            actor_id=actor_id,
            action=kind.value,
            target_user_id=target.user_id,
            target_role_id=target.role_id,
            target_permission_id=target.permission_id,
            details=dict(metadata) if metadata else None,
        )

        try:
            entry_id = self._store.append_audit_entry(entry)
        except Exception:
            logger.exception(
                "Audit write failed action=%s organization_id=%s actor_id=%s",
                kind.value,
                organization_id,
                actor_id,
            )
            return None

        logger.debug("Audit recorded id=%s action=%s organization_id=%s", entry_id, kind.value, organization_id)
        return entry_id
