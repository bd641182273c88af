"""
Error taxonomy for the authorization engine.

Absence of permission is never an error: non-members and inactive members
resolve to the zero mask. Exceptions here are for conditions the caller must
act on (no identity, store down) or for programming errors.
"""

from __future__ import annotations


class AuthzError(Exception):
    """Base class for engine errors."""


class NotAuthenticated(AuthzError):
    """No resolvable user identity was supplied; resolution is not attempted."""


class StoreUnavailable(AuthzError):
    """
    A read or write against the backing store failed.

    Resolution aborts as a whole (fail closed). Callers must treat the subject
    as unauthorized.
    """


class MembershipNotFound(AuthzError):
    """Raised by refresh operations addressed at an unknown membership id."""

    def __init__(self, membership_id: int) -> None:
        super().__init__(f"membership {membership_id} not found")
        self.membership_id = membership_id


class RoleNotAssignable(AuthzError):
    """Raised when a role-management flow targets a protected system role."""


class BitPositionError(ValueError):
    """Bit position outside [0, 63]. Positions only come from the registry, so this is a bug."""


class RegistryConfigError(ValueError):
    """Raised when the permission registry (or its YAML file) is invalid."""
