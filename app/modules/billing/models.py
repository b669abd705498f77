"""Billing ORM models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import PaymentMethodEnum

if TYPE_CHECKING:
    from app.modules.lessons.models import LessonSession


class Payment(BaseModelMixin, Base):
    """Money received for one or more lessons of a series."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint("lessons_count >= 0", name="lessons_count_non_negative"),
    )

    series_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("lesson_series.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="RUB", nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    lessons_count: Mapped[int] = mapped_column(default=0, nullable=False)
    method: Mapped[PaymentMethodEnum] = mapped_column(
        SAEnum(PaymentMethodEnum, name="payment_method_enum", native_enum=False),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    sessions: Mapped[list[LessonSession]] = relationship(back_populates="payment")
