"""Billing repository layer."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentMethodEnum
from app.modules.billing.models import Payment


class BillingRepository:
    """DB access methods for billing."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_payment(
        self,
        series_id: UUID | None,
        amount: Decimal,
        currency: str,
        payment_date: date,
        lessons_count: int,
        method: PaymentMethodEnum,
        description: str | None,
        notes: str | None,
        created_by_id: UUID | None,
    ) -> Payment:
        payment = Payment(
            series_id=series_id,
            amount=amount,
            currency=currency.upper(),
            payment_date=payment_date,
            lessons_count=lessons_count,
            method=method,
            description=description,
            notes=notes,
            created_by_id=created_by_id,
        )
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_payment_by_id(self, payment_id: UUID) -> Payment | None:
        stmt = select(Payment).where(Payment.id == payment_id)
        return await self.session.scalar(stmt)

    async def list_payments_by_series(
        self,
        series_id: UUID,
        limit: int,
        offset: int,
    ) -> tuple[list[Payment], int]:
        base_stmt: Select[tuple[Payment]] = select(Payment).where(Payment.series_id == series_id)
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            base_stmt.order_by(Payment.payment_date.desc(), Payment.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def delete_payment(self, payment: Payment) -> None:
        await self.session.delete(payment)
        await self.session.flush()
