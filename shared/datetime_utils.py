"""
Date/time helpers: framework-agnostic.

MongoDB hands back naive datetimes unless the client is tz-aware; every
comparison in the service layer goes through ensure_utc() so stored values
and the injected clock are always comparable.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC.

    Returns ``None`` when *value* is ``None``.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    """Milliseconds since the Unix epoch, as browsers expect in JSON."""
    if value is None:
        return None
    return int(ensure_utc(value).timestamp() * 1000)
