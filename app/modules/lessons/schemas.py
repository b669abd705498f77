"""Lessons schemas."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.enums import SessionFollowUpEnum, SessionStatusEnum, TransferDirectionEnum


class SessionStatusUpdate(BaseModel):
    """Set status request; follow-up values ask the caller to open a dedicated flow."""

    status: SessionStatusEnum | SessionFollowUpEnum


class BulkStatusUpdate(BaseModel):
    """Apply one status to several dates of a series."""

    lesson_dates: list[date] = Field(min_length=1, max_length=366)
    status: SessionStatusEnum | SessionFollowUpEnum


class RescheduleRequest(BaseModel):
    """Move lesson to another date."""

    new_date: date


class SubstituteRequest(BaseModel):
    """One-day teacher and/or room substitution."""

    teacher: str | None = Field(default=None, max_length=255)
    room: str | None = Field(default=None, max_length=128)

    @model_validator(mode="after")
    def validate_target(self) -> "SubstituteRequest":
        if self.teacher is None and self.room is None:
            raise ValueError("teacher or room must be provided")
        return self


class DurationUpdate(BaseModel):
    """Override lesson duration for one date."""

    duration_minutes: int = Field(gt=0, le=600)


class NotesUpdate(BaseModel):
    """Replace notes for one date."""

    notes: str | None = None


class AdditionalSessionCreate(BaseModel):
    """Make-up lesson outside the weekly pattern."""

    lesson_date: date
    duration_minutes: int | None = Field(default=None, gt=0, le=600)
    notes: str | None = None


class LessonSessionRead(BaseModel):
    """Persisted session response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    series_id: UUID
    lesson_date: date
    status: SessionStatusEnum
    duration_minutes: int
    paid_minutes: int
    payment_id: UUID | None
    notes: str | None
    is_additional: bool
    substitute_teacher: str | None
    substitute_room: str | None
    rescheduled_to: date | None
    rescheduled_from: date | None
    created_at: datetime
    updated_at: datetime


class TransferRead(BaseModel):
    """Payment attribution move applied by a status change."""

    model_config = ConfigDict(from_attributes=True)

    direction: TransferDirectionEnum
    payment_id: UUID
    source_date: date
    target_date: date | None
    paid_minutes: int
    is_exhausted: bool


class StatusChangeOutcomeRead(BaseModel):
    """Result of a status change."""

    model_config = ConfigDict(from_attributes=True)

    lesson_date: date
    session: LessonSessionRead | None
    changed: bool
    transfer: TransferRead | None
    warnings: list[str]
    follow_up: SessionFollowUpEnum | None


class RescheduleRead(BaseModel):
    """Origin and destination rows after a move."""

    origin: LessonSessionRead
    destination: LessonSessionRead
