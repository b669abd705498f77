"""Scheduling schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.enums import ScheduleAttributeEnum, SeriesOwnerTypeEnum, SessionStatusEnum
from app.modules.scheduling.effective import TimeWindow
from app.modules.scheduling.recurrence import canonical_weekdays


class SeriesCreate(BaseModel):
    """Create lesson series request."""

    owner_type: SeriesOwnerTypeEnum
    owner_id: UUID
    title: str = Field(min_length=1, max_length=255)
    schedule_days: list[str] = Field(default_factory=list)
    start_time: time | None = None
    end_time: time | None = None
    teacher_name: str | None = Field(default=None, max_length=255)
    room: str | None = Field(default=None, max_length=128)
    period_start: date | None = None
    period_end: date | None = None
    duration_minutes: int | None = Field(default=None, gt=0, le=600)
    price_per_lesson: Decimal | None = Field(default=None, ge=0)

    @field_validator("schedule_days")
    @classmethod
    def normalize_schedule_days(cls, value: list[str]) -> list[str]:
        """Accept English and Russian day names, store canonical English names."""
        return canonical_weekdays(value)

    @model_validator(mode="after")
    def validate_ranges(self) -> "SeriesCreate":
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be provided together")
        if self.start_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if (
            self.period_start is not None
            and self.period_end is not None
            and self.period_end < self.period_start
        ):
            raise ValueError("period_end must not be before period_start")
        return self


class SeriesRead(BaseModel):
    """Lesson series response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_type: SeriesOwnerTypeEnum
    owner_id: UUID
    title: str
    schedule_days: list[str]
    start_time: time | None
    end_time: time | None
    teacher_name: str | None
    room: str | None
    period_start: date | None
    period_end: date | None
    duration_minutes: int
    price_per_lesson: Decimal | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ScheduleChangeCreate(BaseModel):
    """Record a series attribute change over an applied date range."""

    attribute: ScheduleAttributeEnum
    new_value: str | None = Field(default=None, max_length=255)
    applied_from: date
    applied_to: date | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def validate_change(self) -> "ScheduleChangeCreate":
        if self.applied_to is not None and self.applied_to < self.applied_from:
            raise ValueError("applied_to must not be before applied_from")
        if self.attribute == ScheduleAttributeEnum.TIME_WINDOW:
            if self.new_value is None:
                raise ValueError("time_window change requires new_value")
            self.new_value = TimeWindow.parse(self.new_value).format()
        return self


class ScheduleChangeRead(BaseModel):
    """Schedule change record response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    series_id: UUID
    attribute: ScheduleAttributeEnum
    old_value: str | None
    new_value: str | None
    applied_from: date
    applied_to: date | None
    changed_by_id: UUID | None
    notes: str | None
    created_at: datetime


class OccurrencesRead(BaseModel):
    """Generated occurrence dates for a series."""

    series_id: UUID
    is_configured: bool
    dates: list[date]


class EffectiveTimeRead(BaseModel):
    """Time window in force on a date."""

    series_id: UUID
    on_date: date
    start_time: time | None
    end_time: time | None


class TimelineEntryRead(BaseModel):
    """Merged timeline entry."""

    model_config = ConfigDict(from_attributes=True)

    lesson_date: date
    status: SessionStatusEnum
    duration_minutes: int
    paid_minutes: int
    payment_id: UUID | None
    is_additional: bool
    is_virtual: bool
    session_id: UUID | None
    notes: str | None
    start_time: time | None
    end_time: time | None
    teacher_name: str | None
    room: str | None


class TimelineRead(BaseModel):
    """Merged timeline for a series."""

    series_id: UUID
    is_configured: bool
    entries: list[TimelineEntryRead]
