"""Merge generated occurrences with persisted session rows into one timeline."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, time
from uuid import UUID

from app.core.enums import ScheduleAttributeEnum, SessionStatusEnum
from app.modules.scheduling.effective import (
    ChangeRecordLike,
    resolve_effective_time,
    resolve_effective_value,
)
from app.modules.scheduling.recurrence import series_occurrences


@dataclass(slots=True)
class TimelineEntry:
    """One dated occurrence as seen by callers, virtual or persisted."""

    lesson_date: date
    status: SessionStatusEnum
    duration_minutes: int
    paid_minutes: int
    payment_id: UUID | None
    is_additional: bool
    is_virtual: bool
    session_id: UUID | None = None
    notes: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    teacher_name: str | None = None
    room: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_id is not None


def _virtual_entry(series, lesson_date: date) -> TimelineEntry:
    return TimelineEntry(
        lesson_date=lesson_date,
        status=SessionStatusEnum.SCHEDULED,
        duration_minutes=series.duration_minutes,
        paid_minutes=0,
        payment_id=None,
        is_additional=False,
        is_virtual=True,
    )


def _persisted_entry(session) -> TimelineEntry:
    return TimelineEntry(
        lesson_date=session.lesson_date,
        status=session.status or SessionStatusEnum.SCHEDULED,
        duration_minutes=session.duration_minutes,
        paid_minutes=session.paid_minutes or 0,
        payment_id=session.payment_id,
        is_additional=bool(session.is_additional),
        is_virtual=False,
        session_id=session.id,
        notes=session.notes,
    )


def merge_timeline(
    series,
    sessions: Iterable,
    records: Sequence[ChangeRecordLike] = (),
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[TimelineEntry]:
    """Union generated dates with persisted rows, one entry per date, ascending.

    A persisted row always wins over the virtual default for its date. Rows
    outside the pattern (additional lessons, reschedule targets) are kept.
    """
    entries: dict[date, TimelineEntry] = {}
    for lesson_date in series_occurrences(series):
        entries[lesson_date] = _virtual_entry(series, lesson_date)

    substitutions: dict[date, tuple[str | None, str | None]] = {}
    for session in sessions:
        entries[session.lesson_date] = _persisted_entry(session)
        substitutions[session.lesson_date] = (
            getattr(session, "substitute_teacher", None),
            getattr(session, "substitute_room", None),
        )

    timeline: list[TimelineEntry] = []
    for lesson_date in sorted(entries):
        if date_from is not None and lesson_date < date_from:
            continue
        if date_to is not None and lesson_date > date_to:
            continue
        entry = entries[lesson_date]
        window = resolve_effective_time(series, records, lesson_date)
        if window is not None:
            entry.start_time, entry.end_time = window.start, window.end
        substitute_teacher, substitute_room = substitutions.get(lesson_date, (None, None))
        entry.teacher_name = substitute_teacher or resolve_effective_value(
            records,
            ScheduleAttributeEnum.TEACHER,
            lesson_date,
            series.teacher_name,
        )
        entry.room = substitute_room or resolve_effective_value(
            records,
            ScheduleAttributeEnum.ROOM,
            lesson_date,
            series.room,
        )
        timeline.append(entry)
    return timeline
