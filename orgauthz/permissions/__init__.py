"""
Permission representation: bitmask primitives and the code -> bit registry.

Pure Python, no database or web dependency.
"""

from .bitmask import EMPTY_MASK, MASK_BITS, MAX_MASK, clear_bit, mask_of, set_bit, test_bit, union
from .registry import PermissionRegistry, load_registry, load_registry_file

__all__ = [
    "EMPTY_MASK",
    "MASK_BITS",
    "MAX_MASK",
    "PermissionRegistry",
    "clear_bit",
    "load_registry",
    "load_registry_file",
    "mask_of",
    "set_bit",
    "test_bit",
    "union",
]
