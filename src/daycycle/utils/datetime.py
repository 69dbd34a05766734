"""DateTime utilities for business dates and cutoff handling.

All timestamps stored by daycycle are timezone-aware UTC datetimes; business
dates and cutoff defaults are derived in the configured time zone.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytz


def utc_now() -> datetime:
    """Get the current timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime, time_zone: Optional[str] = None) -> datetime:
    """Normalise a datetime to UTC.

    Naive datetimes are interpreted in ``time_zone`` when given, otherwise as UTC.

    Args:
        value: Datetime to normalise
        time_zone: pytz time zone name used to localise naive values

    Returns:
        Timezone-aware UTC datetime
    """
    if value.tzinfo is None:
        if time_zone:
            value = pytz.timezone(time_zone).localize(value)
        else:
            value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def business_date(time_zone: str = "UTC", at: Optional[datetime] = None) -> date:
    """Get the business date for a moment in the configured time zone.

    Args:
        time_zone: pytz time zone name
        at: Moment to convert (defaults to now)

    Returns:
        Calendar date in the given time zone
    """
    moment = ensure_utc(at) if at is not None else utc_now()
    return moment.astimezone(pytz.timezone(time_zone)).date()


def elapsed_seconds(start: Optional[datetime], end: Optional[datetime] = None) -> float:
    """Seconds between two timestamps, using now when ``end`` is missing."""
    if start is None:
        return 0.0
    finish = end or utc_now()
    return max((ensure_utc(finish) - ensure_utc(start)).total_seconds(), 0.0)


def floor_to_bucket(value: datetime, bucket_hours: int) -> datetime:
    """Floor a timestamp to the start of its ``bucket_hours`` wide bucket (UTC)."""
    moment = ensure_utc(value)
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    bucket = timedelta(hours=bucket_hours)
    return epoch + ((moment - epoch) // bucket) * bucket
