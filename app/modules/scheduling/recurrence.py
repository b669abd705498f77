"""Expansion of a recurring lesson definition into calendar dates."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, timedelta

from app.shared.utils import iter_dates

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_WEEKDAY_ALIASES: dict[str, int] = {}
for _index, _aliases in enumerate(
    (
        ("monday", "mon", "пн", "понедельник"),
        ("tuesday", "tue", "tues", "вт", "вторник"),
        ("wednesday", "wed", "ср", "среда"),
        ("thursday", "thu", "thur", "thurs", "чт", "четверг"),
        ("friday", "fri", "пт", "пятница"),
        ("saturday", "sat", "сб", "суббота"),
        ("sunday", "sun", "вс", "воскресенье"),
    ),
):
    for _alias in _aliases:
        _WEEKDAY_ALIASES[_alias] = _index


def parse_weekday(token: str) -> int | None:
    """Return weekday index (Monday=0) for a day token, or None if unknown."""
    if not isinstance(token, str):
        return None
    return _WEEKDAY_ALIASES.get(token.strip().lower().rstrip("."))


def normalize_weekdays(tokens: Iterable[str]) -> frozenset[int]:
    """Map day tokens to weekday indexes, silently dropping unknown tokens."""
    indexes = (parse_weekday(token) for token in tokens)
    return frozenset(index for index in indexes if index is not None)


def canonical_weekdays(tokens: Iterable[str]) -> list[str]:
    """Return canonical English day names ordered Monday first.

    Raises ValueError on the first unknown token, for use at write boundaries.
    """
    indexes: set[int] = set()
    for token in tokens:
        index = parse_weekday(token)
        if index is None:
            raise ValueError(f"Unknown weekday: {token!r}")
        indexes.add(index)
    return [WEEKDAY_NAMES[index] for index in sorted(indexes)]


class OccurrenceSequence:
    """Lazy, restartable sequence of occurrence dates.

    Iterating walks the validity period day by day and yields dates whose
    weekday is in the set. Every new iteration starts over from the period
    start, so the same object can be consumed any number of times.
    """

    def __init__(self, weekdays: frozenset[int], start: date | None, end: date | None) -> None:
        self.weekdays = weekdays
        self.start = start
        self.end = end

    @property
    def is_configured(self) -> bool:
        """False when there are no weekdays or no valid period."""
        return (
            bool(self.weekdays)
            and self.start is not None
            and self.end is not None
            and self.start <= self.end
        )

    def __iter__(self) -> Iterator[date]:
        if not self.is_configured:
            return iter(())
        return self._iter_from(self.start)

    def _iter_from(self, start: date) -> Iterator[date]:
        for day in iter_dates(start, self.end):
            if day.weekday() in self.weekdays:
                yield day

    def __contains__(self, day: object) -> bool:
        if not isinstance(day, date) or not self.is_configured:
            return False
        return self.start <= day <= self.end and day.weekday() in self.weekdays

    def after(self, day: date) -> Iterator[date]:
        """Iterate occurrences strictly after the given date."""
        if not self.is_configured:
            return iter(())
        return self._iter_from(max(self.start, day + timedelta(days=1)))

    def first_after(self, day: date) -> date | None:
        return next(self.after(day), None)


def generate_occurrences(
    schedule_days: Iterable[str],
    period_start: date | None,
    period_end: date | None,
) -> OccurrenceSequence:
    """Build the occurrence sequence for a weekday set and inclusive validity period."""
    return OccurrenceSequence(normalize_weekdays(schedule_days or ()), period_start, period_end)


def series_occurrences(series) -> OccurrenceSequence:
    """Occurrence sequence for an object exposing schedule_days and period bounds."""
    return generate_occurrences(series.schedule_days or (), series.period_start, series.period_end)
