"""
Permission registry and YAML loader.

The registry is the fixed mapping PermissionCode -> bit position (0-63). It is
loaded once at process start and passed explicitly to whatever needs it; it is
never mutated. Bit positions are append-only: a code keeps its position for
the lifetime of the deployment, since every stored mask depends on it.

Expected YAML shape (simplified):

    permissions:
      profile.view:
        bit: 0
        name: View profile
        category: basic
        addon: false
        dangerous: false

    tiers:
      user:
        name: User
        permissions: [profile.view, profile.edit]
        max_members: 1
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Iterable, Iterator, Mapping

import yaml

from orgauthz.errors import RegistryConfigError
from orgauthz.permissions.bitmask import MASK_BITS, mask_of

logger = logging.getLogger(__name__)


class PermissionRegistry:
    """
    Immutable code -> bit position table.

    Usage:
        registry = PermissionRegistry({"profile.view": 0, "profile.edit": 1})
        registry.position_of("profile.view")   # 0
        registry.position_of("nope")           # None -> treat as denied
    """

    def __init__(self, positions: Mapping[str, int]) -> None:
        seen: dict[int, str] = {}
        for code, pos in positions.items():
            if not isinstance(code, str) or not code.strip():
                raise RegistryConfigError(f"permission code must be a non-empty string, got {code!r}")
            if not isinstance(pos, int) or isinstance(pos, bool) or not 0 <= pos < MASK_BITS:
                raise RegistryConfigError(f"permission {code!r} has bit {pos!r} outside [0, {MASK_BITS - 1}]")
            if pos in seen:
                raise RegistryConfigError(f"permission {code!r} reuses bit {pos} already assigned to {seen[pos]!r}")
            seen[pos] = code

        # Ordered by bit position so iteration is stable across deployments.
        self._positions: dict[str, int] = dict(sorted(positions.items(), key=lambda item: item[1]))

    @classmethod
    def from_codes(cls, codes: Iterable[str]) -> PermissionRegistry:
        """Allocate positions 0..n-1 in the given order."""
        registry = cls({})
        for code in codes:
            registry = registry.with_code(code)
        return registry

    def position_of(self, code: str) -> int | None:
        return self._positions.get(code)

    def code_at(self, pos: int) -> str | None:
        for code, assigned in self._positions.items():
            if assigned == pos:
                return code
        return None

    def next_position(self) -> int:
        """The next unused position: one past the highest assigned bit."""
        if not self._positions:
            return 0
        return max(self._positions.values()) + 1

    def with_code(self, code: str) -> PermissionRegistry:
        """
        Return a new registry with ``code`` appended at the next unused position.

        Existing codes are never moved. Re-registering a code is rejected rather
        than silently reusing its position.
        """

        if code in self._positions:
            raise RegistryConfigError(f"permission {code!r} is already registered at bit {self._positions[code]}")
        pos = self.next_position()
        if pos >= MASK_BITS:
            raise RegistryConfigError(f"registry is full ({MASK_BITS} bits); cannot add {code!r}")
        return PermissionRegistry({**self._positions, code: pos})

    def mask_for(self, codes: Iterable[str]) -> int:
        """Mask with the bits of ``codes`` set. Unknown codes raise RegistryConfigError."""
        positions: list[int] = []
        for code in codes:
            pos = self.position_of(code)
            if pos is None:
                raise RegistryConfigError(f"unknown permission code {code!r}")
            positions.append(pos)
        return mask_of(positions)

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(self._positions)

    def items(self) -> Iterator[tuple[str, int]]:
        return iter(self._positions.items())

    def as_dict(self) -> dict[str, int]:
        return dict(self._positions)

    def __contains__(self, code: object) -> bool:
        return code in self._positions

    def __iter__(self) -> Iterator[str]:
        return iter(self._positions)

    def __len__(self) -> int:
        return len(self._positions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionRegistry):
            return NotImplemented
        return self._positions == other._positions

    def __hash__(self) -> int:
        return hash(tuple(self._positions.items()))

    def __repr__(self) -> str:
        return f"PermissionRegistry({len(self)} codes)"


# ---- Catalog definitions -------------------------------------------------------------


@dataclass(frozen=True)
class PermissionDef:
    """Catalog metadata for one permission, used to seed the permissions table."""

    code: str
    bit_position: int
    name: str
    category: str
    is_addon: bool = False
    is_dangerous: bool = False
    description: str | None = None


@dataclass(frozen=True)
class TierDef:
    """Subscription tier seed: base permissions granted to every organization on it."""

    slug: str
    name: str
    base_permissions: int
    max_members: int | None = None
    description: str | None = None


@dataclass(frozen=True)
class RegistryFile:
    """Fully-loaded registry file."""

    registry: PermissionRegistry
    permissions: tuple[PermissionDef, ...]
    tiers: tuple[TierDef, ...]


def load_registry_file(path: Path) -> RegistryFile:
    """Load and validate the registry YAML from disk."""

    raw_text = path.read_text(encoding="utf-8")
    raw = yaml.safe_load(raw_text) or {}
    if not isinstance(raw, dict):
        raise RegistryConfigError("registry file must be a mapping")

    perms_raw = raw.get("permissions") or {}
    tiers_raw = raw.get("tiers") or {}

    if not isinstance(perms_raw, dict):
        raise RegistryConfigError("permissions must be a mapping")
    if not isinstance(tiers_raw, dict):
        raise RegistryConfigError("tiers must be a mapping when present")

    positions: dict[str, int] = {}
    defs: list[PermissionDef] = []
    for code, perm_val in perms_raw.items():
        if not isinstance(perm_val, dict):
            raise RegistryConfigError(f"permission {code!r} must be a mapping")
        if "bit" not in perm_val:
            raise RegistryConfigError(f"permission {code!r} requires an explicit bit")
        bit = perm_val["bit"]
        positions[str(code)] = bit
        description = perm_val.get("description")
        defs.append(
            PermissionDef(
                code=str(code),
                bit_position=bit,
                name=str(perm_val.get("name") or code),
                category=str(perm_val.get("category") or "general"),
                is_addon=bool(perm_val.get("addon", False)),
                is_dangerous=bool(perm_val.get("dangerous", False)),
                description=str(description) if description is not None else None,
            )
        )

    # Validates positions: range, uniqueness.
    registry = PermissionRegistry(positions)

    tiers: list[TierDef] = []
    for slug, tier_val in tiers_raw.items():
        if not isinstance(tier_val, dict):
            raise RegistryConfigError(f"tier {slug!r} must be a mapping")
        codes = tier_val.get("permissions") or []
        if not isinstance(codes, list):
            raise RegistryConfigError(f"tier {slug!r}.permissions must be a list")
        try:
            base = registry.mask_for(str(c) for c in codes)
        except RegistryConfigError as exc:
            raise RegistryConfigError(f"tier {slug!r}: {exc}") from exc
        max_members = tier_val.get("max_members")
        description = tier_val.get("description")
        tiers.append(
            TierDef(
                slug=str(slug),
                name=str(tier_val.get("name") or slug),
                base_permissions=base,
                max_members=int(max_members) if max_members is not None else None,
                description=str(description) if description is not None else None,
            )
        )

    logger.debug("Loaded permission registry path=%s codes=%d tiers=%d", path, len(registry), len(tiers))
    return RegistryFile(
        registry=registry,
        permissions=tuple(sorted(defs, key=lambda d: d.bit_position)),
        tiers=tuple(tiers),
    )


def load_registry(path: Path) -> PermissionRegistry:
    """Convenience: load the YAML and return just the registry."""
    return load_registry_file(path).registry
