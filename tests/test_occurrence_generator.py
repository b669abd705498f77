from __future__ import annotations

from datetime import date

import pytest

from app.modules.scheduling.recurrence import (
    canonical_weekdays,
    generate_occurrences,
    normalize_weekdays,
    parse_weekday,
)


def test_mon_wed_fri_expands_to_matching_dates_in_period() -> None:
    occurrences = generate_occurrences(["Mon", "Wed", "Fri"], date(2024, 1, 1), date(2024, 1, 12))

    assert list(occurrences) == [
        date(2024, 1, 1),
        date(2024, 1, 3),
        date(2024, 1, 5),
        date(2024, 1, 8),
        date(2024, 1, 10),
        date(2024, 1, 12),
    ]


def test_every_generated_date_lies_in_period_and_matches_a_weekday() -> None:
    start, end = date(2024, 2, 1), date(2024, 5, 31)
    occurrences = generate_occurrences(["tuesday", "Чт", "sun"], start, end)

    dates = list(occurrences)
    assert dates
    assert all(start <= item <= end for item in dates)
    assert {item.weekday() for item in dates} == {1, 3, 6}


def test_period_bounds_are_inclusive() -> None:
    occurrences = generate_occurrences(["monday"], date(2024, 1, 1), date(2024, 1, 8))

    assert list(occurrences) == [date(2024, 1, 1), date(2024, 1, 8)]


def test_sequence_is_restartable() -> None:
    occurrences = generate_occurrences(["Пн", "Среда"], date(2024, 1, 1), date(2024, 1, 31))

    assert list(occurrences) == list(occurrences)


@pytest.mark.parametrize(
    ("schedule_days", "period_start", "period_end"),
    [
        ([], date(2024, 1, 1), date(2024, 1, 31)),
        (["mon"], None, date(2024, 1, 31)),
        (["mon"], date(2024, 1, 1), None),
        (["mon"], date(2024, 2, 1), date(2024, 1, 1)),
        (["someday"], date(2024, 1, 1), date(2024, 1, 31)),
    ],
)
def test_unconfigured_series_yields_nothing(
    schedule_days: list[str],
    period_start: date | None,
    period_end: date | None,
) -> None:
    occurrences = generate_occurrences(schedule_days, period_start, period_end)

    assert occurrences.is_configured is False
    assert list(occurrences) == []
    assert list(occurrences.after(date(2024, 1, 1))) == []


def test_single_day_period_on_matching_weekday() -> None:
    occurrences = generate_occurrences(["fri"], date(2024, 1, 5), date(2024, 1, 5))

    assert list(occurrences) == [date(2024, 1, 5)]


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("Monday", 0),
        ("tue", 1),
        ("Ср", 2),
        ("четверг", 3),
        ("  FRI ", 4),
        ("Сб", 5),
        ("Воскресенье", 6),
        ("holiday", None),
    ],
)
def test_parse_weekday_accepts_english_and_russian_names(token: str, expected: int | None) -> None:
    assert parse_weekday(token) == expected


def test_unknown_tokens_are_dropped_when_normalizing() -> None:
    assert normalize_weekdays(["mon", "xyz", "Пт"]) == frozenset({0, 4})


def test_canonical_weekdays_orders_and_deduplicates() -> None:
    assert canonical_weekdays(["Пт", "mon", "Monday"]) == ["monday", "friday"]


def test_canonical_weekdays_rejects_unknown_token() -> None:
    with pytest.raises(ValueError):
        canonical_weekdays(["mon", "funday"])


def test_membership_and_first_after() -> None:
    occurrences = generate_occurrences(["mon", "wed", "fri"], date(2024, 1, 1), date(2024, 1, 12))

    assert date(2024, 1, 3) in occurrences
    assert date(2024, 1, 4) not in occurrences
    assert date(2024, 1, 15) not in occurrences
    assert occurrences.first_after(date(2024, 1, 5)) == date(2024, 1, 8)
    assert occurrences.first_after(date(2024, 1, 12)) is None
