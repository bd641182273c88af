from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Current time as a naive UTC datetime.

    All persisted timestamps are naive UTC so they compare cleanly after a
    SQLite round trip (which drops tzinfo).
    """

    return datetime.now(timezone.utc).replace(tzinfo=None)
