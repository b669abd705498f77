"""Scheduling ORM models."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Numeric, String, Text, Time
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import ScheduleAttributeEnum, SeriesOwnerTypeEnum

if TYPE_CHECKING:
    from app.modules.lessons.models import LessonSession


class LessonSeries(BaseModelMixin, Base):
    """Recurring lesson definition for a student or a group."""

    __tablename__ = "lesson_series"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="duration_positive"),
        CheckConstraint(
            "period_start IS NULL OR period_end IS NULL OR period_start <= period_end",
            name="period_ordered",
        ),
    )

    owner_type: Mapped[SeriesOwnerTypeEnum] = mapped_column(
        SAEnum(SeriesOwnerTypeEnum, name="series_owner_type_enum", native_enum=False),
        nullable=False,
    )
    owner_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    schedule_days: Mapped[list[str]] = mapped_column(JSONB, default=list, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    teacher_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    room: Mapped[str | None] = mapped_column(String(128), nullable=True)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(nullable=False)
    price_per_lesson: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    change_records: Mapped[list[ScheduleChangeRecord]] = relationship(
        back_populates="series",
        order_by="ScheduleChangeRecord.applied_from",
    )
    sessions: Mapped[list[LessonSession]] = relationship(back_populates="series")


class ScheduleChangeRecord(BaseModelMixin, Base):
    """Immutable history entry for one series attribute change."""

    __tablename__ = "schedule_change_records"
    __table_args__ = (
        CheckConstraint(
            "applied_to IS NULL OR applied_from <= applied_to",
            name="applied_range_ordered",
        ),
    )

    series_id: Mapped[UUID] = mapped_column(
        ForeignKey("lesson_series.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attribute: Mapped[ScheduleAttributeEnum] = mapped_column(
        SAEnum(ScheduleAttributeEnum, name="schedule_attribute_enum", native_enum=False),
        nullable=False,
    )
    old_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    new_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    applied_from: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    applied_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    changed_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    series: Mapped[LessonSeries] = relationship(back_populates="change_records")
