"""Utility functions and helpers for daycycle."""

from daycycle.utils.datetime import (
    business_date,
    elapsed_seconds,
    ensure_utc,
    floor_to_bucket,
    utc_now,
)
from daycycle.utils.decorators import (
    retry_with_backoff,
    traced,
    with_timeout,
)

__all__ = [
    # DateTime utilities
    "utc_now",
    "ensure_utc",
    "business_date",
    "elapsed_seconds",
    "floor_to_bucket",
    # Decorators
    "retry_with_backoff",
    "traced",
    "with_timeout",
]
