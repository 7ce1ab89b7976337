"""
Time helpers.

MongoDB returns naive datetimes in UTC, so every timestamp the access core
compares or stores is naive UTC as well.
"""

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(moment: datetime | None = None) -> datetime:
    """Midnight (UTC) of the day containing `moment`."""
    moment = moment or utcnow()
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def minutes_until(moment: datetime, now: datetime | None = None) -> int:
    """Whole minutes (rounded up) from `now` until `moment`; 0 if already past."""
    now = now or utcnow()
    seconds = (moment - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 60)
