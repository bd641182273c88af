from __future__ import annotations

from sqlalchemy import BigInteger
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from orgauthz.permissions.bitmask import MASK_BITS, MAX_MASK


class Base(DeclarativeBase):
    pass


_SIGN_BIT = 1 << (MASK_BITS - 1)


class MaskType(TypeDecorator):
    """
    Unsigned 64-bit permission mask stored in a signed BIGINT column.

    Databases only offer signed 64-bit integers, so values with the top bit set
    (the owner mask, for one) are stored in two's complement and converted back
    on load.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value) & MAX_MASK
        return value - (1 << MASK_BITS) if value & _SIGN_BIT else value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value) & MAX_MASK
