"""Lessons ORM models."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, Enum as SAEnum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import SessionStatusEnum

if TYPE_CHECKING:
    from app.modules.billing.models import Payment
    from app.modules.scheduling.models import LessonSeries


class LessonSession(BaseModelMixin, Base):
    """Persisted exception to the generated calendar for one series date.

    Rows exist only where an occurrence deviates from the default (status,
    payment, notes, duration) or was added outside the weekly pattern.
    """

    __tablename__ = "lesson_sessions"
    __table_args__ = (
        UniqueConstraint("series_id", "lesson_date", name="uq_lesson_sessions_series_id_lesson_date"),
        CheckConstraint("duration_minutes > 0", name="duration_positive"),
        CheckConstraint("paid_minutes >= 0", name="paid_minutes_non_negative"),
        CheckConstraint("paid_minutes <= duration_minutes", name="paid_minutes_within_duration"),
    )

    series_id: Mapped[UUID] = mapped_column(
        ForeignKey("lesson_series.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    lesson_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[SessionStatusEnum] = mapped_column(
        SAEnum(SessionStatusEnum, name="session_status_enum", native_enum=False),
        default=SessionStatusEnum.SCHEDULED,
        nullable=False,
        index=True,
    )
    duration_minutes: Mapped[int] = mapped_column(nullable=False)
    paid_minutes: Mapped[int] = mapped_column(default=0, nullable=False)
    payment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_additional: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    substitute_teacher: Mapped[str | None] = mapped_column(String(255), nullable=True)
    substitute_room: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rescheduled_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    rescheduled_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_by_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    series: Mapped[LessonSeries] = relationship(back_populates="sessions")
    payment: Mapped[Payment | None] = relationship(back_populates="sessions")
