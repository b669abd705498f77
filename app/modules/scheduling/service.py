"""Scheduling business logic layer."""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import ScheduleAttributeEnum
from app.modules.audit.repository import AuditRepository
from app.modules.identity.models import User
from app.modules.identity.service import OFFICE_ROLES, STAFF_ROLES, ensure_role
from app.modules.lessons.repository import LessonsRepository
from app.modules.scheduling.effective import (
    TimeWindow,
    current_time_window,
    resolve_effective_time,
    resolve_effective_value,
)
from app.modules.scheduling.models import LessonSeries, ScheduleChangeRecord
from app.modules.scheduling.recurrence import OccurrenceSequence, series_occurrences
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.scheduling.schemas import ScheduleChangeCreate, SeriesCreate
from app.modules.scheduling.timeline import TimelineEntry, merge_timeline
from app.shared.exceptions import BusinessRuleException, NotFoundException

logger = logging.getLogger(__name__)


def _current_value(series: LessonSeries, attribute: ScheduleAttributeEnum) -> str | None:
    if attribute == ScheduleAttributeEnum.TIME_WINDOW:
        window = current_time_window(series)
        return window.format() if window is not None else None
    if attribute == ScheduleAttributeEnum.TEACHER:
        return series.teacher_name
    return series.room


def _current_value_changes(attribute: ScheduleAttributeEnum, new_value: str | None) -> dict:
    if attribute == ScheduleAttributeEnum.TIME_WINDOW:
        window = TimeWindow.parse(new_value)
        return {"start_time": window.start, "end_time": window.end}
    if attribute == ScheduleAttributeEnum.TEACHER:
        return {"teacher_name": new_value}
    return {"room": new_value}


class SchedulingService:
    """Series definitions, their change history and calendar projections."""

    def __init__(
        self,
        repository: SchedulingRepository,
        lessons_repository: LessonsRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.lessons_repository = lessons_repository
        self.audit_repository = audit_repository

    def _ensure_period_span(self, period_start: date | None, period_end: date | None) -> None:
        if period_start is None or period_end is None:
            return
        max_days = get_settings().timeline_max_days
        if (period_end - period_start).days > max_days:
            raise BusinessRuleException(f"Series period must not exceed {max_days} days")

    async def create_series(self, payload: SeriesCreate, actor: User) -> LessonSeries:
        """Create lesson series (office staff only)."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can create lesson series")
        self._ensure_period_span(payload.period_start, payload.period_end)

        duration = payload.duration_minutes or get_settings().default_lesson_duration_minutes
        series = await self.repository.create_series(
            owner_type=payload.owner_type,
            owner_id=payload.owner_id,
            title=payload.title,
            schedule_days=payload.schedule_days,
            start_time=payload.start_time,
            end_time=payload.end_time,
            teacher_name=payload.teacher_name,
            room=payload.room,
            period_start=payload.period_start,
            period_end=payload.period_end,
            duration_minutes=duration,
            price_per_lesson=payload.price_per_lesson,
            created_by_id=actor.id,
        )
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="scheduling.series.create",
            entity_type="lesson_series",
            entity_id=str(series.id),
            payload={
                "owner_type": series.owner_type.value,
                "owner_id": str(series.owner_id),
                "schedule_days": list(series.schedule_days),
                "duration_minutes": series.duration_minutes,
            },
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="lesson_series",
            aggregate_id=str(series.id),
            event_type="scheduling.series.created",
            payload={"series_id": str(series.id), "owner_id": str(series.owner_id)},
        )
        return series

    async def get_series(self, series_id: UUID) -> LessonSeries:
        series = await self.repository.get_series_by_id(series_id)
        if series is None:
            raise NotFoundException("Lesson series not found")
        return series

    async def get_series_for_update(self, series_id: UUID) -> LessonSeries:
        """Lock the series row for the rest of the transaction and return it."""
        series = await self.repository.lock_series(series_id)
        if series is None:
            raise NotFoundException("Lesson series not found")
        if not series.is_active:
            raise BusinessRuleException("Lesson series is inactive")
        return series

    async def read_series(self, series_id: UUID, actor: User) -> LessonSeries:
        ensure_role(actor, STAFF_ROLES, "Only staff can view lesson series")
        return await self.get_series(series_id)

    async def list_series(
        self,
        actor: User,
        owner_id: UUID | None,
        include_inactive: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[LessonSeries], int]:
        """List series with pagination."""
        ensure_role(actor, STAFF_ROLES, "Only staff can view lesson series")
        return await self.repository.list_series(
            owner_id=owner_id,
            include_inactive=include_inactive,
            limit=limit,
            offset=offset,
        )

    async def deactivate_series(self, series_id: UUID, actor: User) -> LessonSeries:
        """Deactivate series; further ledger mutations are rejected."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can deactivate lesson series")
        series = await self.get_series_for_update(series_id)
        series = await self.repository.update_series(series, is_active=False)
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="scheduling.series.deactivate",
            entity_type="lesson_series",
            entity_id=str(series.id),
            payload={},
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="lesson_series",
            aggregate_id=str(series.id),
            event_type="scheduling.series.deactivated",
            payload={"series_id": str(series.id)},
        )
        return series

    async def record_schedule_change(
        self,
        series_id: UUID,
        payload: ScheduleChangeCreate,
        actor: User,
    ) -> ScheduleChangeRecord:
        """Store an attribute change; open-ended changes become the current value."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can change schedules")
        series = await self.get_series_for_update(series_id)
        records = await self.repository.list_change_records(series.id)

        old_value = resolve_effective_value(
            records,
            payload.attribute,
            payload.applied_from,
            _current_value(series, payload.attribute),
        )
        record = await self.repository.create_change_record(
            series_id=series.id,
            attribute=payload.attribute,
            old_value=old_value,
            new_value=payload.new_value,
            applied_from=payload.applied_from,
            applied_to=payload.applied_to,
            changed_by_id=actor.id,
            notes=payload.notes,
        )
        if payload.applied_to is None:
            await self.repository.update_series(
                series,
                **_current_value_changes(payload.attribute, payload.new_value),
            )

        logger.info(
            "Schedule change recorded series=%s attribute=%s from=%s to=%s",
            series.id,
            payload.attribute.value,
            payload.applied_from,
            payload.applied_to,
        )
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="scheduling.change.record",
            entity_type="lesson_series",
            entity_id=str(series.id),
            payload={
                "attribute": record.attribute.value,
                "old_value": record.old_value,
                "new_value": record.new_value,
                "applied_from": record.applied_from.isoformat(),
                "applied_to": record.applied_to.isoformat() if record.applied_to else None,
            },
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="lesson_series",
            aggregate_id=str(series.id),
            event_type="scheduling.change.recorded",
            payload={
                "series_id": str(series.id),
                "record_id": str(record.id),
                "attribute": record.attribute.value,
            },
        )
        return record

    async def list_schedule_changes(self, series_id: UUID, actor: User) -> list[ScheduleChangeRecord]:
        ensure_role(actor, STAFF_ROLES, "Only staff can view schedule changes")
        series = await self.get_series(series_id)
        return await self.repository.list_change_records(series.id)

    async def get_occurrences(self, series_id: UUID, actor: User) -> tuple[LessonSeries, OccurrenceSequence]:
        """Return the series and its generated occurrence sequence."""
        ensure_role(actor, STAFF_ROLES, "Only staff can view occurrences")
        series = await self.get_series(series_id)
        return series, series_occurrences(series)

    async def get_effective_time(
        self,
        series_id: UUID,
        on_date: date,
        actor: User,
    ) -> TimeWindow | None:
        """Return the time window in force for the series on a date."""
        ensure_role(actor, STAFF_ROLES, "Only staff can view schedules")
        series = await self.get_series(series_id)
        records = await self.repository.list_change_records(series.id)
        return resolve_effective_time(series, records, on_date)

    async def get_timeline(
        self,
        series_id: UUID,
        actor: User,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> tuple[LessonSeries, list[TimelineEntry]]:
        """Merge generated dates with persisted sessions for display."""
        ensure_role(actor, STAFF_ROLES, "Only staff can view timelines")
        if date_from is not None and date_to is not None:
            if date_to < date_from:
                raise BusinessRuleException("date_to must not be before date_from")
            max_days = get_settings().timeline_max_days
            if (date_to - date_from).days > max_days:
                raise BusinessRuleException(f"Timeline window must not exceed {max_days} days")

        series = await self.get_series(series_id)
        sessions = await self.lessons_repository.list_sessions(series.id)
        records = await self.repository.list_change_records(series.id)
        return series, merge_timeline(series, sessions, records, date_from, date_to)


async def get_scheduling_service(session: AsyncSession = Depends(get_db_session)) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return SchedulingService(
        SchedulingRepository(session),
        LessonsRepository(session),
        AuditRepository(session),
    )
