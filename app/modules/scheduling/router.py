"""Scheduling API router."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.modules.identity.service import get_current_user
from app.modules.scheduling.recurrence import series_occurrences
from app.modules.scheduling.schemas import (
    EffectiveTimeRead,
    OccurrencesRead,
    ScheduleChangeCreate,
    ScheduleChangeRead,
    SeriesCreate,
    SeriesRead,
    TimelineEntryRead,
    TimelineRead,
)
from app.modules.scheduling.service import SchedulingService, get_scheduling_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/series", tags=["scheduling"])


@router.post("", response_model=SeriesRead, status_code=status.HTTP_201_CREATED)
async def create_series(
    payload: SeriesCreate,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> SeriesRead:
    """Create lesson series."""
    series = await service.create_series(payload, current_user)
    return SeriesRead.model_validate(series)


@router.get("", response_model=Page[SeriesRead])
async def list_series(
    owner_id: UUID | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    pagination=Depends(get_pagination_params),
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> Page[SeriesRead]:
    """List lesson series."""
    items, total = await service.list_series(
        current_user,
        owner_id,
        include_inactive,
        pagination.limit,
        pagination.offset,
    )
    serialized = [SeriesRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{series_id}", response_model=SeriesRead)
async def get_series(
    series_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> SeriesRead:
    series = await service.read_series(series_id, current_user)
    return SeriesRead.model_validate(series)


@router.post("/{series_id}/deactivate", response_model=SeriesRead)
async def deactivate_series(
    series_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> SeriesRead:
    """Deactivate lesson series."""
    series = await service.deactivate_series(series_id, current_user)
    return SeriesRead.model_validate(series)


@router.post(
    "/{series_id}/changes",
    response_model=ScheduleChangeRead,
    status_code=status.HTTP_201_CREATED,
)
async def record_schedule_change(
    series_id: UUID,
    payload: ScheduleChangeCreate,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> ScheduleChangeRead:
    """Record time, teacher or room change."""
    record = await service.record_schedule_change(series_id, payload, current_user)
    return ScheduleChangeRead.model_validate(record)


@router.get("/{series_id}/changes", response_model=list[ScheduleChangeRead])
async def list_schedule_changes(
    series_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> list[ScheduleChangeRead]:
    records = await service.list_schedule_changes(series_id, current_user)
    return [ScheduleChangeRead.model_validate(record) for record in records]


@router.get("/{series_id}/occurrences", response_model=OccurrencesRead)
async def get_occurrences(
    series_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> OccurrencesRead:
    """List generated occurrence dates."""
    series, occurrences = await service.get_occurrences(series_id, current_user)
    return OccurrencesRead(
        series_id=series.id,
        is_configured=occurrences.is_configured,
        dates=list(occurrences),
    )


@router.get("/{series_id}/effective-time", response_model=EffectiveTimeRead)
async def get_effective_time(
    series_id: UUID,
    on: date = Query(),
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> EffectiveTimeRead:
    """Return the time window in force on a date."""
    window = await service.get_effective_time(series_id, on, current_user)
    return EffectiveTimeRead(
        series_id=series_id,
        on_date=on,
        start_time=window.start if window is not None else None,
        end_time=window.end if window is not None else None,
    )


@router.get("/{series_id}/timeline", response_model=TimelineRead)
async def get_timeline(
    series_id: UUID,
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> TimelineRead:
    """Return generated occurrences merged with persisted sessions."""
    series, entries = await service.get_timeline(series_id, current_user, date_from, date_to)
    return TimelineRead(
        series_id=series.id,
        is_configured=series_occurrences(series).is_configured,
        entries=[TimelineEntryRead.model_validate(entry) for entry in entries],
    )
