"""ORM models. Importing this package registers every table on Base.metadata."""

from .audit import AuditEntry
from .organization import Membership, Organization, SubscriptionTier
from .permission import AddonGrant, Permission, PermissionOverride, Role, RoleAssignment

__all__ = [
    "AddonGrant",
    "AuditEntry",
    "Membership",
    "Organization",
    "Permission",
    "PermissionOverride",
    "Role",
    "RoleAssignment",
    "SubscriptionTier",
]
