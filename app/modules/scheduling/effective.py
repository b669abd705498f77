"""Resolution of series attribute values in force on a given occurrence date."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, time
from typing import Protocol

from app.core.enums import ScheduleAttributeEnum


class ChangeRecordLike(Protocol):
    attribute: ScheduleAttributeEnum
    old_value: str | None
    new_value: str | None
    applied_from: date
    applied_to: date | None


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Lesson start/end wall-clock times."""

    start: time
    end: time

    @classmethod
    def parse(cls, value: str) -> TimeWindow:
        """Parse `HH:MM-HH:MM`."""
        try:
            start_raw, end_raw = value.split("-", 1)
            start = time.fromisoformat(start_raw.strip())
            end = time.fromisoformat(end_raw.strip())
        except (AttributeError, ValueError) as exc:
            raise ValueError(f"Invalid time window: {value!r}") from exc
        if end <= start:
            raise ValueError(f"Time window must end after it starts: {value!r}")
        return cls(start=start, end=end)

    def format(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"

    def __str__(self) -> str:
        return self.format()


def _covers(record: ChangeRecordLike, on_date: date) -> bool:
    if record.applied_from > on_date:
        return False
    return record.applied_to is None or on_date <= record.applied_to


def resolve_effective_value(
    records: Iterable[ChangeRecordLike],
    attribute: ScheduleAttributeEnum,
    on_date: date,
    current_value: str | None,
) -> str | None:
    """Return the attribute value that was authoritative on `on_date`.

    First match wins:
    1. a record whose applied range contains the date gives its new value;
    2. a date before the earliest record gives that record's old value;
    3. otherwise the new value of the last record applied on or before the date;
    4. with no usable record the series' current value is returned.
    """
    relevant = sorted(
        (record for record in records if record.attribute == attribute),
        key=lambda record: record.applied_from,
    )
    if not relevant:
        return current_value

    covering = [record for record in relevant if _covers(record, on_date)]
    if covering:
        return covering[-1].new_value

    earliest = relevant[0]
    if on_date < earliest.applied_from:
        return earliest.old_value

    carried: ChangeRecordLike | None = None
    for record in relevant:
        if record.applied_from > on_date:
            break
        carried = record
    if carried is not None:
        return carried.new_value

    return current_value


def current_time_window(series) -> TimeWindow | None:
    if series.start_time is None or series.end_time is None:
        return None
    return TimeWindow(start=series.start_time, end=series.end_time)


def resolve_effective_time(
    series,
    records: Iterable[ChangeRecordLike],
    on_date: date,
) -> TimeWindow | None:
    """Return the time window in force for the series on `on_date`."""
    current = current_time_window(series)
    value = resolve_effective_value(
        records,
        ScheduleAttributeEnum.TIME_WINDOW,
        on_date,
        current.format() if current is not None else None,
    )
    if value is None:
        return None
    return TimeWindow.parse(value)
