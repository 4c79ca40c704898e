"""Timezone-aware UTC helpers.

Timestamp columns are ``DateTime(timezone=True)`` with ``default=utc_now``.
SQLite hands them back naive, so readers that compare or sort timestamps
normalise with ``as_utc`` first.

Usage:
    from libs.common.datetime_utils import as_utc, utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

import time
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat a naive datetime as UTC; convert an aware one to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def unix_now() -> int:
    """Current Unix time in whole seconds, as webhook signatures carry it."""
    return int(time.time())
