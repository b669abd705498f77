"""Billing business logic layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import SessionStatusEnum
from app.modules.audit.repository import AuditRepository
from app.modules.billing.models import Payment
from app.modules.billing.repository import BillingRepository
from app.modules.billing.schemas import PaymentCreate
from app.modules.identity.models import User
from app.modules.identity.service import OFFICE_ROLES, ensure_role
from app.modules.lessons.repository import LessonsRepository
from app.modules.scheduling.models import LessonSeries
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.scheduling.timeline import TimelineEntry, merge_timeline
from app.shared.exceptions import BusinessRuleException, NotFoundException

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = frozenset(
    {SessionStatusEnum.SCHEDULED, SessionStatusEnum.COMPLETED, SessionStatusEnum.ATTENDED},
)


@dataclass(slots=True)
class PaymentAllocation:
    """Created payment and the lesson dates it was attributed to."""

    payment: Payment
    attributed_dates: list[date] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def select_payable_entries(entries: list[TimelineEntry], lessons_count: int) -> list[TimelineEntry]:
    """Earliest unpaid payable entries, at most `lessons_count` of them."""
    payable = [
        entry for entry in entries if entry.payment_id is None and entry.status in PAYABLE_STATUSES
    ]
    return sorted(payable, key=lambda entry: entry.lesson_date)[:lessons_count]


class BillingService:
    """Billing domain service."""

    def __init__(
        self,
        repository: BillingRepository,
        lessons_repository: LessonsRepository,
        scheduling_repository: SchedulingRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.lessons_repository = lessons_repository
        self.scheduling_repository = scheduling_repository
        self.audit_repository = audit_repository

    async def _lock_series(self, series_id: UUID, require_active: bool = True) -> LessonSeries:
        series = await self.scheduling_repository.lock_series(series_id)
        if series is None:
            raise NotFoundException("Lesson series not found")
        if require_active and not series.is_active:
            raise BusinessRuleException("Lesson series is inactive")
        return series

    async def ensure_payment_capacity(
        self,
        payment: Payment,
        nominal_duration: int,
        additional_minutes: int,
    ) -> None:
        """Reject writes that would attribute more minutes than the payment covers."""
        capacity = payment.lessons_count * nominal_duration
        attributed = await self.lessons_repository.sum_paid_minutes_by_payment(payment.id)
        if attributed + additional_minutes > capacity:
            raise BusinessRuleException(
                f"Payment covers {capacity} minutes, {attributed + additional_minutes} requested",
            )

    async def create_payment(self, payload: PaymentCreate, actor: User) -> PaymentAllocation:
        """Record a payment and attribute it to the earliest unpaid lessons of its series."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can record payments")

        series = None
        if payload.series_id is not None:
            series = await self._lock_series(payload.series_id)

        payment = await self.repository.create_payment(
            series_id=payload.series_id,
            amount=Decimal(payload.amount),
            currency=payload.currency or get_settings().default_currency,
            payment_date=payload.payment_date,
            lessons_count=payload.lessons_count,
            method=payload.method,
            description=payload.description,
            notes=payload.notes,
            created_by_id=actor.id,
        )
        allocation = PaymentAllocation(payment=payment)
        if series is not None and payload.lessons_count > 0:
            await self._allocate(series, payment, actor, allocation)

        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="billing.payment.create",
            entity_type="payment",
            entity_id=str(payment.id),
            payload={
                "series_id": str(payment.series_id) if payment.series_id else None,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "lessons_count": payment.lessons_count,
                "attributed_dates": [item.isoformat() for item in allocation.attributed_dates],
            },
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="billing",
            aggregate_id=str(payment.id),
            event_type="billing.payment.created",
            payload={
                "payment_id": str(payment.id),
                "series_id": str(payment.series_id) if payment.series_id else None,
                "lessons_count": payment.lessons_count,
            },
        )
        return allocation

    async def _allocate(
        self,
        series: LessonSeries,
        payment: Payment,
        actor: User,
        allocation: PaymentAllocation,
    ) -> None:
        sessions = await self.lessons_repository.list_sessions(series.id)
        by_date = {item.lesson_date: item for item in sessions}
        entries = select_payable_entries(merge_timeline(series, sessions), payment.lessons_count)

        remaining = payment.lessons_count * series.duration_minutes
        planned: list[tuple[TimelineEntry, int]] = []
        for entry in entries:
            paid_minutes = min(entry.duration_minutes, remaining)
            if paid_minutes <= 0:
                break
            planned.append((entry, paid_minutes))
            remaining -= paid_minutes

        await self.ensure_payment_capacity(
            payment,
            series.duration_minutes,
            sum(paid_minutes for _, paid_minutes in planned),
        )
        for entry, paid_minutes in planned:
            if entry.is_virtual:
                self.lessons_repository.stage_session(
                    series.id,
                    entry.lesson_date,
                    status=SessionStatusEnum.SCHEDULED,
                    duration_minutes=entry.duration_minutes,
                    actor_id=actor.id,
                    paid_minutes=paid_minutes,
                    payment_id=payment.id,
                )
            else:
                self.lessons_repository.stage_update(
                    by_date[entry.lesson_date],
                    actor.id,
                    payment_id=payment.id,
                    paid_minutes=paid_minutes,
                )
            allocation.attributed_dates.append(entry.lesson_date)
        await self.lessons_repository.flush()

        missing = payment.lessons_count - len(allocation.attributed_dates)
        if missing > 0:
            logger.warning(
                "Payment %s: %s of %s lessons could not be attributed in series %s",
                payment.id,
                missing,
                payment.lessons_count,
                series.id,
            )
            allocation.warnings.append(f"{missing} lesson(s) could not be attributed")

    async def get_payment(self, payment_id: UUID, actor: User) -> Payment:
        ensure_role(actor, OFFICE_ROLES, "Only office staff can view payments")
        payment = await self.repository.get_payment_by_id(payment_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        return payment

    async def list_series_payments(
        self,
        series_id: UUID,
        actor: User,
        limit: int,
        offset: int,
    ) -> tuple[list[Payment], int]:
        """List payments of a series."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can view payments")
        series = await self.scheduling_repository.get_series_by_id(series_id)
        if series is None:
            raise NotFoundException("Lesson series not found")
        return await self.repository.list_payments_by_series(series_id=series.id, limit=limit, offset=offset)

    async def delete_payment(self, payment_id: UUID, actor: User) -> None:
        """Detach the payment from every lesson and delete it."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can delete payments")
        payment = await self.get_payment(payment_id, actor)
        if payment.series_id is not None:
            await self._lock_series(payment.series_id, require_active=False)

        sessions = await self.lessons_repository.list_sessions_by_payment(payment.id)
        for lesson_session in sessions:
            self.lessons_repository.stage_update(lesson_session, actor.id, payment_id=None, paid_minutes=0)
        await self.lessons_repository.flush()

        detached = [lesson_session.lesson_date.isoformat() for lesson_session in sessions]
        await self.repository.delete_payment(payment)
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="billing.payment.delete",
            entity_type="payment",
            entity_id=str(payment_id),
            payload={
                "series_id": str(payment.series_id) if payment.series_id else None,
                "amount": str(payment.amount),
                "detached_dates": detached,
            },
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="billing",
            aggregate_id=str(payment_id),
            event_type="billing.payment.deleted",
            payload={"payment_id": str(payment_id), "detached_dates": detached},
        )


async def get_billing_service(session: AsyncSession = Depends(get_db_session)) -> BillingService:
    """Dependency provider for billing service."""
    return BillingService(
        repository=BillingRepository(session),
        lessons_repository=LessonsRepository(session),
        scheduling_repository=SchedulingRepository(session),
        audit_repository=AuditRepository(session),
    )
