"""
Bitmask primitives.

A permission mask is an unsigned 64-bit integer; bit n set means the
permission registered at position n is granted. Combination is OR, revocation
is AND-NOT.
"""

from __future__ import annotations

from typing import Iterable

from orgauthz.errors import BitPositionError

MASK_BITS = 64
MAX_MASK = (1 << MASK_BITS) - 1
EMPTY_MASK = 0


def _check(pos: int) -> int:
    # bool is an int subclass; True/False as a position is always a bug.
    if not isinstance(pos, int) or isinstance(pos, bool) or not 0 <= pos < MASK_BITS:
        raise BitPositionError(f"bit position must be an int in [0, {MASK_BITS - 1}], got {pos!r}")
    return pos


def test_bit(mask: int, pos: int) -> bool:
    return (mask >> _check(pos)) & 1 == 1


# Keep pytest from collecting this when a test module imports it by name.
test_bit.__test__ = False  # type: ignore[attr-defined]


def set_bit(mask: int, pos: int) -> int:
    return (mask | (1 << _check(pos))) & MAX_MASK


def clear_bit(mask: int, pos: int) -> int:
    return mask & ~(1 << _check(pos)) & MAX_MASK


def union(*masks: int) -> int:
    result = EMPTY_MASK
    for mask in masks:
        result |= mask
    return result & MAX_MASK


def mask_of(positions: Iterable[int]) -> int:
    """Build a mask with exactly the given positions set."""
    result = EMPTY_MASK
    for pos in positions:
        result = set_bit(result, pos)
    return result


def positions_of(mask: int) -> list[int]:
    """Positions set in ``mask``, ascending."""
    return [pos for pos in range(MASK_BITS) if (mask >> pos) & 1]
