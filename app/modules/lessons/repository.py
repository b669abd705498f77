"""Lessons repository layer."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import flush_or_conflict
from app.core.enums import SessionStatusEnum
from app.modules.lessons.models import LessonSession


class LessonsRepository:
    """DB operations for the session ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_sessions(self, series_id: UUID) -> list[LessonSession]:
        stmt = (
            select(LessonSession)
            .where(LessonSession.series_id == series_id)
            .order_by(LessonSession.lesson_date.asc())
        )
        return (await self.session.scalars(stmt)).all()

    async def list_sessions_by_payment(self, payment_id: UUID) -> list[LessonSession]:
        stmt = (
            select(LessonSession)
            .where(LessonSession.payment_id == payment_id)
            .order_by(LessonSession.lesson_date.asc())
        )
        return (await self.session.scalars(stmt)).all()

    async def sum_paid_minutes_by_payment(self, payment_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(LessonSession.paid_minutes), 0)).where(
            LessonSession.payment_id == payment_id,
        )
        return int((await self.session.scalar(stmt)) or 0)

    def stage_session(
        self,
        series_id: UUID,
        lesson_date: date,
        status: SessionStatusEnum,
        duration_minutes: int,
        actor_id: UUID | None,
        paid_minutes: int = 0,
        payment_id: UUID | None = None,
        is_additional: bool = False,
        notes: str | None = None,
        **extra,
    ) -> LessonSession:
        """Add a new row to the unit of work without flushing."""
        lesson_session = LessonSession(
            series_id=series_id,
            lesson_date=lesson_date,
            status=status,
            duration_minutes=duration_minutes,
            paid_minutes=paid_minutes,
            payment_id=payment_id,
            is_additional=is_additional,
            notes=notes,
            created_by_id=actor_id,
            updated_by_id=actor_id,
            **extra,
        )
        self.session.add(lesson_session)
        return lesson_session

    def stage_update(
        self,
        lesson_session: LessonSession,
        actor_id: UUID | None,
        **changes,
    ) -> LessonSession:
        """Apply attribute changes without flushing."""
        for key, value in changes.items():
            setattr(lesson_session, key, value)
        lesson_session.updated_by_id = actor_id
        return lesson_session

    async def flush(self) -> None:
        """Write all staged rows together."""
        await flush_or_conflict(self.session)
