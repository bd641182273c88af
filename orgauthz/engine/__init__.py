"""
Permission resolution and caching engine.

No FastAPI dependency. The HTTP layer (orgauthz.routers) is one caller among
others; anything holding a PermissionStore can use PermissionService directly.
"""

from .cache import DEFAULT_TTL, ResolutionCache
from .resolver import PermissionResolver, apply_overrides
from .service import PermissionService, build_service, service_for_session
from .sources import OverrideOp

__all__ = [
    "DEFAULT_TTL",
    "OverrideOp",
    "PermissionResolver",
    "PermissionService",
    "ResolutionCache",
    "apply_overrides",
    "build_service",
    "service_for_session",
]
