from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def truncate_to_ms(dt: datetime) -> datetime:
    """BSON dates keep milliseconds only; truncate before storing so reads compare equal."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def as_utc(dt: datetime | None) -> datetime | None:
    # motor returns naive datetimes unless the client is tz_aware
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
