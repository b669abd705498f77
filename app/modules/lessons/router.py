"""Lessons API router."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.modules.identity.service import get_current_user
from app.modules.lessons.schemas import (
    AdditionalSessionCreate,
    BulkStatusUpdate,
    DurationUpdate,
    LessonSessionRead,
    NotesUpdate,
    RescheduleRead,
    RescheduleRequest,
    SessionStatusUpdate,
    StatusChangeOutcomeRead,
    SubstituteRequest,
)
from app.modules.lessons.service import LessonsService, get_lessons_service

router = APIRouter(prefix="/series/{series_id}/sessions", tags=["lessons"])


@router.put("/{lesson_date}/status", response_model=StatusChangeOutcomeRead)
async def set_status(
    series_id: UUID,
    lesson_date: date,
    payload: SessionStatusUpdate,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> StatusChangeOutcomeRead:
    """Change lesson status, moving payment attribution when needed."""
    outcome = await service.set_status(series_id, lesson_date, payload.status, current_user)
    return StatusChangeOutcomeRead.model_validate(outcome)


@router.post("/status/bulk", response_model=list[StatusChangeOutcomeRead])
async def bulk_set_status(
    series_id: UUID,
    payload: BulkStatusUpdate,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> list[StatusChangeOutcomeRead]:
    """Apply one status to several dates."""
    outcomes = await service.bulk_set_status(series_id, payload.lesson_dates, payload.status, current_user)
    return [StatusChangeOutcomeRead.model_validate(outcome) for outcome in outcomes]


@router.post("/{lesson_date}/reschedule", response_model=RescheduleRead)
async def reschedule_session(
    series_id: UUID,
    lesson_date: date,
    payload: RescheduleRequest,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> RescheduleRead:
    """Move lesson to another date."""
    origin, destination = await service.reschedule_session(
        series_id,
        lesson_date,
        payload.new_date,
        current_user,
    )
    return RescheduleRead(
        origin=LessonSessionRead.model_validate(origin),
        destination=LessonSessionRead.model_validate(destination),
    )


@router.post("/{lesson_date}/substitute", response_model=LessonSessionRead)
async def substitute(
    series_id: UUID,
    lesson_date: date,
    payload: SubstituteRequest,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> LessonSessionRead:
    """Assign a one-day substitute teacher or room."""
    lesson_session = await service.substitute(series_id, lesson_date, payload, current_user)
    return LessonSessionRead.model_validate(lesson_session)


@router.put("/{lesson_date}/duration", response_model=LessonSessionRead)
async def change_duration(
    series_id: UUID,
    lesson_date: date,
    payload: DurationUpdate,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> LessonSessionRead:
    lesson_session = await service.change_duration(
        series_id,
        lesson_date,
        payload.duration_minutes,
        current_user,
    )
    return LessonSessionRead.model_validate(lesson_session)


@router.put("/{lesson_date}/notes", response_model=LessonSessionRead)
async def update_notes(
    series_id: UUID,
    lesson_date: date,
    payload: NotesUpdate,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> LessonSessionRead:
    lesson_session = await service.update_notes(series_id, lesson_date, payload.notes, current_user)
    return LessonSessionRead.model_validate(lesson_session)


@router.post("/additional", response_model=LessonSessionRead, status_code=status.HTTP_201_CREATED)
async def add_additional_session(
    series_id: UUID,
    payload: AdditionalSessionCreate,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> LessonSessionRead:
    """Add a make-up lesson outside the weekly pattern."""
    lesson_session = await service.add_additional_session(series_id, payload, current_user)
    return LessonSessionRead.model_validate(lesson_session)
