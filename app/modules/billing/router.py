"""Billing API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from app.modules.billing.schemas import PaymentAllocationRead, PaymentCreate, PaymentRead
from app.modules.billing.service import BillingService, get_billing_service
from app.modules.identity.service import get_current_user
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/payments", response_model=PaymentAllocationRead, status_code=status.HTTP_201_CREATED)
async def create_payment(
    payload: PaymentCreate,
    service: BillingService = Depends(get_billing_service),
    current_user=Depends(get_current_user),
) -> PaymentAllocationRead:
    """Record payment and attribute it to unpaid lessons."""
    allocation = await service.create_payment(payload, current_user)
    return PaymentAllocationRead(
        payment=PaymentRead.model_validate(allocation.payment),
        attributed_dates=allocation.attributed_dates,
        warnings=allocation.warnings,
    )


@router.get("/payments/{payment_id}", response_model=PaymentRead)
async def get_payment(
    payment_id: UUID,
    service: BillingService = Depends(get_billing_service),
    current_user=Depends(get_current_user),
) -> PaymentRead:
    payment = await service.get_payment(payment_id, current_user)
    return PaymentRead.model_validate(payment)


@router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(
    payment_id: UUID,
    service: BillingService = Depends(get_billing_service),
    current_user=Depends(get_current_user),
) -> Response:
    """Detach payment from its lessons and delete it."""
    await service.delete_payment(payment_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/series/{series_id}/payments", response_model=Page[PaymentRead])
async def list_series_payments(
    series_id: UUID,
    pagination=Depends(get_pagination_params),
    service: BillingService = Depends(get_billing_service),
    current_user=Depends(get_current_user),
) -> Page[PaymentRead]:
    """List payments of a lesson series."""
    items, total = await service.list_series_payments(
        series_id=series_id,
        actor=current_user,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    serialized = [PaymentRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
