"""Scheduling repository layer."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import ScheduleAttributeEnum, SeriesOwnerTypeEnum
from app.modules.scheduling.models import LessonSeries, ScheduleChangeRecord


class SchedulingRepository:
    """DB access for lesson series and their change history."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_series(
        self,
        owner_type: SeriesOwnerTypeEnum,
        owner_id: UUID,
        title: str,
        schedule_days: list[str],
        start_time: time | None,
        end_time: time | None,
        teacher_name: str | None,
        room: str | None,
        period_start: date | None,
        period_end: date | None,
        duration_minutes: int,
        price_per_lesson: Decimal | None,
        created_by_id: UUID | None,
    ) -> LessonSeries:
        series = LessonSeries(
            owner_type=owner_type,
            owner_id=owner_id,
            title=title,
            schedule_days=schedule_days,
            start_time=start_time,
            end_time=end_time,
            teacher_name=teacher_name,
            room=room,
            period_start=period_start,
            period_end=period_end,
            duration_minutes=duration_minutes,
            price_per_lesson=price_per_lesson,
            is_active=True,
            created_by_id=created_by_id,
        )
        self.session.add(series)
        await self.session.flush()
        return series

    async def get_series_by_id(self, series_id: UUID) -> LessonSeries | None:
        stmt = select(LessonSeries).where(LessonSeries.id == series_id)
        return await self.session.scalar(stmt)

    async def lock_series(self, series_id: UUID) -> LessonSeries | None:
        """Load the series row under FOR UPDATE, serializing writers on this series."""
        stmt = select(LessonSeries).where(LessonSeries.id == series_id).with_for_update()
        return await self.session.scalar(stmt)

    async def list_series(
        self,
        owner_id: UUID | None,
        include_inactive: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[LessonSeries], int]:
        base_stmt: Select[tuple[LessonSeries]] = select(LessonSeries)
        if owner_id is not None:
            base_stmt = base_stmt.where(LessonSeries.owner_id == owner_id)
        if not include_inactive:
            base_stmt = base_stmt.where(LessonSeries.is_active.is_(True))

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(LessonSeries.created_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def update_series(self, series: LessonSeries, **changes) -> LessonSeries:
        for key, value in changes.items():
            setattr(series, key, value)
        await self.session.flush()
        return series

    async def create_change_record(
        self,
        series_id: UUID,
        attribute: ScheduleAttributeEnum,
        old_value: str | None,
        new_value: str | None,
        applied_from: date,
        applied_to: date | None,
        changed_by_id: UUID | None,
        notes: str | None,
    ) -> ScheduleChangeRecord:
        record = ScheduleChangeRecord(
            series_id=series_id,
            attribute=attribute,
            old_value=old_value,
            new_value=new_value,
            applied_from=applied_from,
            applied_to=applied_to,
            changed_by_id=changed_by_id,
            notes=notes,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_change_records(self, series_id: UUID) -> list[ScheduleChangeRecord]:
        stmt = (
            select(ScheduleChangeRecord)
            .where(ScheduleChangeRecord.series_id == series_id)
            .order_by(ScheduleChangeRecord.applied_from.asc(), ScheduleChangeRecord.created_at.asc())
        )
        return (await self.session.scalars(stmt)).all()
