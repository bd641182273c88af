"""
Store contract consumed by the resolver, the cache and the audit recorder.

Any backend (document store, SQL, in-memory fake) can serve the engine as long
as it implements these indexed lookups plus two writes. Implementations must
raise StoreUnavailable for backend failures; they must not retry or swallow.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from orgauthz.models import (
    AddonGrant,
    AuditEntry,
    Membership,
    Organization,
    Permission,
    PermissionOverride,
    Role,
    RoleAssignment,
    SubscriptionTier,
)


class PermissionStore(Protocol):
    def get_membership(self, user_id: str, organization_id: int) -> Membership | None: ...

    def get_membership_by_id(self, membership_id: int) -> Membership | None: ...

    def get_organization(self, organization_id: int) -> Organization | None: ...

    def get_tier(self, tier_id: int) -> SubscriptionTier | None: ...

    def list_active_addons(self, organization_id: int, now: datetime) -> list[AddonGrant]: ...

    def list_role_assignments(self, membership_id: int) -> list[RoleAssignment]: ...

    def get_role(self, role_id: int) -> Role | None: ...

    def list_active_overrides(self, membership_id: int, now: datetime) -> list[PermissionOverride]: ...

    def get_permission(self, permission_id: int) -> Permission | None: ...

    def patch_membership(
        self,
        membership_id: int,
        *,
        computed_permissions: int,
        permissions_last_computed_at: datetime,
    ) -> None: ...

    def append_audit_entry(self, entry: AuditEntry) -> int: ...
