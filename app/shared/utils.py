"""Shared utility functions."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield civil dates from start to end, both inclusive."""
    current = start
    step = timedelta(days=1)
    while current <= end:
        yield current
        current += step
