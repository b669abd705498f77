"""Lessons business logic layer."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import SessionFollowUpEnum, SessionStatusEnum, TransferDirectionEnum
from app.core.metrics import record_payment_transfer
from app.modules.audit.repository import AuditRepository
from app.modules.identity.models import User
from app.modules.identity.service import OFFICE_ROLES, STAFF_ROLES, ensure_role
from app.modules.lessons.models import LessonSession
from app.modules.lessons.repository import LessonsRepository
from app.modules.lessons.schemas import AdditionalSessionCreate, SubstituteRequest
from app.modules.lessons.transfer import (
    TransferPlan,
    current_status,
    needs_backward_reclamation,
    needs_forward_transfer,
    plan_backward_reclamation,
    plan_forward_transfer,
)
from app.modules.scheduling.models import LessonSeries
from app.modules.scheduling.recurrence import OccurrenceSequence, series_occurrences
from app.modules.scheduling.repository import SchedulingRepository
from app.shared.exceptions import BusinessRuleException, ConflictException, NotFoundException

logger = logging.getLogger(__name__)

UNATTRIBUTED_WARNING = "payment is now unattributed"
FLOW_ONLY_STATUSES = frozenset({SessionStatusEnum.RESCHEDULED, SessionStatusEnum.RESCHEDULED_OUT})


@dataclass(slots=True)
class StatusChangeOutcome:
    """What a status change did to the ledger."""

    lesson_date: date
    session: LessonSession | None
    changed: bool = False
    transfer: TransferPlan | None = None
    warnings: list[str] = field(default_factory=list)
    follow_up: SessionFollowUpEnum | None = None


@dataclass(slots=True)
class _LedgerSnapshot:
    occurrences: OccurrenceSequence
    sessions: list[LessonSession]

    @property
    def by_date(self) -> dict[date, LessonSession]:
        return {item.lesson_date: item for item in self.sessions}


def ensure_transition_allowed(
    current: SessionStatusEnum,
    new_status: SessionStatusEnum,
) -> None:
    """Raise when the status state machine forbids the move."""
    if new_status in FLOW_ONLY_STATUSES:
        raise BusinessRuleException(f"Status '{new_status.value}' is set by the reschedule flow only")
    if current == SessionStatusEnum.RESCHEDULED_OUT:
        raise BusinessRuleException("Lesson was rescheduled and can no longer change")
    if current == SessionStatusEnum.CANCELLED and new_status not in (
        SessionStatusEnum.CANCELLED,
        SessionStatusEnum.SCHEDULED,
    ):
        raise BusinessRuleException("Cancelled lesson can only be reverted to scheduled")


class LessonsService:
    """Session ledger: per-date overrides, status changes and payment attribution."""

    def __init__(
        self,
        repository: LessonsRepository,
        scheduling_repository: SchedulingRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.scheduling_repository = scheduling_repository
        self.audit_repository = audit_repository

    async def _lock_series(self, series_id: UUID) -> LessonSeries:
        series = await self.scheduling_repository.lock_series(series_id)
        if series is None:
            raise NotFoundException("Lesson series not found")
        if not series.is_active:
            raise BusinessRuleException("Lesson series is inactive")
        return series

    async def _snapshot(self, series: LessonSeries) -> _LedgerSnapshot:
        sessions = await self.repository.list_sessions(series.id)
        return _LedgerSnapshot(occurrences=series_occurrences(series), sessions=list(sessions))

    @staticmethod
    def _existing_session(snapshot: _LedgerSnapshot, lesson_date: date) -> LessonSession | None:
        """Return the persisted row for the date, validating the date belongs to the series."""
        lesson_session = snapshot.by_date.get(lesson_date)
        if lesson_session is None and lesson_date not in snapshot.occurrences:
            raise BusinessRuleException(f"{lesson_date.isoformat()} is not a lesson date of this series")
        return lesson_session

    def _upsert(
        self,
        series: LessonSeries,
        lesson_session: LessonSession | None,
        lesson_date: date,
        actor: User,
        **changes,
    ) -> LessonSession:
        if lesson_session is not None:
            return self.repository.stage_update(lesson_session, actor.id, **changes)
        fields = {
            "status": SessionStatusEnum.SCHEDULED,
            "duration_minutes": series.duration_minutes,
        }
        fields.update(changes)
        return self.repository.stage_session(series.id, lesson_date, actor_id=actor.id, **fields)

    async def _record_session_event(
        self,
        actor: User,
        action: str,
        lesson_session: LessonSession,
        payload: dict,
    ) -> None:
        event_payload = {
            "series_id": str(lesson_session.series_id),
            "lesson_date": lesson_session.lesson_date.isoformat(),
            **payload,
        }
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action=action,
            entity_type="lesson_session",
            entity_id=str(lesson_session.id),
            payload=event_payload,
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="lesson_session",
            aggregate_id=str(lesson_session.id),
            event_type=action,
            payload=event_payload,
        )

    async def set_status(
        self,
        series_id: UUID,
        lesson_date: date,
        status: SessionStatusEnum | SessionFollowUpEnum,
        actor: User,
    ) -> StatusChangeOutcome:
        """Change the status of one lesson date, moving payment attribution when needed."""
        ensure_role(actor, STAFF_ROLES, "Only staff can change lesson status")
        series = await self._lock_series(series_id)
        return await self._apply_status(series, lesson_date, status, actor)

    async def bulk_set_status(
        self,
        series_id: UUID,
        lesson_dates: Iterable[date],
        status: SessionStatusEnum | SessionFollowUpEnum,
        actor: User,
    ) -> list[StatusChangeOutcome]:
        """Apply one status to several dates in ascending date order under one lock."""
        ensure_role(actor, STAFF_ROLES, "Only staff can change lesson status")
        series = await self._lock_series(series_id)
        outcomes: list[StatusChangeOutcome] = []
        for lesson_date in sorted(set(lesson_dates)):
            outcomes.append(await self._apply_status(series, lesson_date, status, actor))
        return outcomes

    async def _apply_status(
        self,
        series: LessonSeries,
        lesson_date: date,
        status: SessionStatusEnum | SessionFollowUpEnum,
        actor: User,
    ) -> StatusChangeOutcome:
        snapshot = await self._snapshot(series)
        lesson_session = self._existing_session(snapshot, lesson_date)

        if isinstance(status, SessionFollowUpEnum):
            return StatusChangeOutcome(lesson_date=lesson_date, session=lesson_session, follow_up=status)

        previous = current_status(lesson_session)
        ensure_transition_allowed(previous, status)
        if previous == status:
            return StatusChangeOutcome(lesson_date=lesson_date, session=lesson_session)

        plan: TransferPlan | None = None
        reclaiming = needs_backward_reclamation(lesson_session, status)
        if needs_forward_transfer(lesson_session, status):
            plan = plan_forward_transfer(
                lesson_session,
                snapshot.sessions,
                snapshot.occurrences,
                series.duration_minutes,
            )
        elif reclaiming:
            origin_duration = (
                lesson_session.duration_minutes if lesson_session is not None else series.duration_minutes
            )
            plan = plan_backward_reclamation(lesson_date, origin_duration, snapshot.sessions)

        origin_changes: dict = {"status": status}
        if plan is not None and plan.direction == TransferDirectionEnum.FORWARD:
            origin_changes.update(payment_id=None, paid_minutes=0)
            self._apply_forward_target(series, snapshot, plan, actor)
        elif plan is not None:
            donor = snapshot.by_date[plan.source_date]
            self.repository.stage_update(donor, actor.id, payment_id=None, paid_minutes=0)
            origin_changes.update(payment_id=plan.payment_id, paid_minutes=plan.paid_minutes)

        lesson_session = self._upsert(series, lesson_session, lesson_date, actor, **origin_changes)
        await self.repository.flush()

        outcome = StatusChangeOutcome(
            lesson_date=lesson_date,
            session=lesson_session,
            changed=True,
            transfer=plan,
        )
        await self._record_session_event(
            actor,
            "lessons.session.status_changed",
            lesson_session,
            {"from_status": previous.value, "to_status": status.value},
        )
        if plan is not None:
            await self._record_transfer(series, plan, actor, outcome)
        elif reclaiming:
            record_payment_transfer(TransferDirectionEnum.BACKWARD.value, "no_donor")
        return outcome

    def _apply_forward_target(
        self,
        series: LessonSeries,
        snapshot: _LedgerSnapshot,
        plan: TransferPlan,
        actor: User,
    ) -> None:
        if plan.is_exhausted:
            return
        if plan.create_target:
            self.repository.stage_session(
                series.id,
                plan.target_date,
                status=SessionStatusEnum.SCHEDULED,
                duration_minutes=series.duration_minutes,
                actor_id=actor.id,
                paid_minutes=plan.paid_minutes,
                payment_id=plan.payment_id,
            )
            return
        target = snapshot.by_date[plan.target_date]
        self.repository.stage_update(
            target,
            actor.id,
            payment_id=plan.payment_id,
            paid_minutes=plan.paid_minutes,
        )

    async def _record_transfer(
        self,
        series: LessonSeries,
        plan: TransferPlan,
        actor: User,
        outcome: StatusChangeOutcome,
    ) -> None:
        payload = {
            "series_id": str(series.id),
            "payment_id": str(plan.payment_id),
            "direction": plan.direction.value,
            "source_date": plan.source_date.isoformat(),
            "target_date": plan.target_date.isoformat() if plan.target_date else None,
            "paid_minutes": plan.paid_minutes,
        }
        if plan.is_exhausted:
            logger.warning(
                "Payment %s left unattributed: no open lesson after %s in series %s",
                plan.payment_id,
                plan.source_date,
                series.id,
            )
            outcome.warnings.append(UNATTRIBUTED_WARNING)
            event_type = "lessons.payment.unattributed"
            record_payment_transfer(plan.direction.value, "exhausted")
        else:
            logger.info(
                "Payment %s moved %s from %s to %s in series %s",
                plan.payment_id,
                plan.direction.value,
                plan.source_date,
                plan.target_date,
                series.id,
            )
            event_type = "lessons.payment.transferred"
            record_payment_transfer(plan.direction.value, "moved")

        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action=event_type,
            entity_type="payment",
            entity_id=str(plan.payment_id),
            payload=payload,
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="payment",
            aggregate_id=str(plan.payment_id),
            event_type=event_type,
            payload=payload,
        )

    async def reschedule_session(
        self,
        series_id: UUID,
        lesson_date: date,
        new_date: date,
        actor: User,
    ) -> tuple[LessonSession, LessonSession]:
        """Move a lesson to another date; its payment attribution moves with it."""
        ensure_role(actor, STAFF_ROLES, "Only staff can reschedule lessons")
        if new_date == lesson_date:
            raise BusinessRuleException("New date must differ from the lesson date")

        series = await self._lock_series(series_id)
        snapshot = await self._snapshot(series)
        origin = self._existing_session(snapshot, lesson_date)
        previous = current_status(origin)
        if previous in (SessionStatusEnum.RESCHEDULED_OUT, SessionStatusEnum.CANCELLED):
            raise BusinessRuleException(f"Lesson with status '{previous.value}' cannot be rescheduled")

        # A pattern date already holds its own regular lesson.
        if new_date in snapshot.by_date or new_date in snapshot.occurrences:
            raise ConflictException(f"{new_date.isoformat()} is already taken in this series")

        duration = origin.duration_minutes if origin is not None else series.duration_minutes
        payment_id = origin.payment_id if origin is not None else None
        paid_minutes = min(origin.paid_minutes or 0, duration) if origin is not None else 0

        origin = self._upsert(
            series,
            origin,
            lesson_date,
            actor,
            status=SessionStatusEnum.RESCHEDULED_OUT,
            rescheduled_to=new_date,
            payment_id=None,
            paid_minutes=0,
        )
        destination = self._upsert(
            series,
            None,
            new_date,
            actor,
            status=SessionStatusEnum.RESCHEDULED,
            duration_minutes=duration,
            rescheduled_from=lesson_date,
            is_additional=True,
            payment_id=payment_id,
            paid_minutes=paid_minutes,
        )
        await self.repository.flush()

        payload = {
            "from_date": lesson_date.isoformat(),
            "to_date": new_date.isoformat(),
            "payment_id": str(payment_id) if payment_id else None,
        }
        await self._record_session_event(actor, "lessons.session.rescheduled", origin, payload)
        return origin, destination

    async def substitute(
        self,
        series_id: UUID,
        lesson_date: date,
        payload: SubstituteRequest,
        actor: User,
    ) -> LessonSession:
        """Store a one-day teacher or room substitution."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can assign substitutions")
        series = await self._lock_series(series_id)
        snapshot = await self._snapshot(series)
        lesson_session = self._existing_session(snapshot, lesson_date)
        if current_status(lesson_session) == SessionStatusEnum.RESCHEDULED_OUT:
            raise BusinessRuleException("Lesson was rescheduled and can no longer change")

        changes = payload.model_dump(exclude_none=True)
        lesson_session = self._upsert(
            series,
            lesson_session,
            lesson_date,
            actor,
            **{f"substitute_{key}": value for key, value in changes.items()},
        )
        await self.repository.flush()
        await self._record_session_event(actor, "lessons.session.substituted", lesson_session, changes)
        return lesson_session

    async def change_duration(
        self,
        series_id: UUID,
        lesson_date: date,
        duration_minutes: int,
        actor: User,
    ) -> LessonSession:
        """Override one lesson's duration; never below the minutes already paid."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can change lesson duration")
        series = await self._lock_series(series_id)
        snapshot = await self._snapshot(series)
        lesson_session = self._existing_session(snapshot, lesson_date)

        if lesson_session is not None:
            if lesson_session.duration_minutes == duration_minutes:
                return lesson_session
            if duration_minutes < (lesson_session.paid_minutes or 0):
                raise BusinessRuleException(
                    f"Duration {duration_minutes} is below paid minutes {lesson_session.paid_minutes}",
                )
        previous = lesson_session.duration_minutes if lesson_session is not None else series.duration_minutes

        lesson_session = self._upsert(series, lesson_session, lesson_date, actor, duration_minutes=duration_minutes)
        await self.repository.flush()
        await self._record_session_event(
            actor,
            "lessons.session.duration_changed",
            lesson_session,
            {"from_minutes": previous, "to_minutes": duration_minutes},
        )
        return lesson_session

    async def update_notes(
        self,
        series_id: UUID,
        lesson_date: date,
        notes: str | None,
        actor: User,
    ) -> LessonSession:
        ensure_role(actor, STAFF_ROLES, "Only staff can edit lesson notes")
        series = await self._lock_series(series_id)
        snapshot = await self._snapshot(series)
        lesson_session = self._existing_session(snapshot, lesson_date)
        if lesson_session is not None and lesson_session.notes == notes:
            return lesson_session

        lesson_session = self._upsert(series, lesson_session, lesson_date, actor, notes=notes)
        await self.repository.flush()
        await self._record_session_event(actor, "lessons.session.notes_updated", lesson_session, {})
        return lesson_session

    async def add_additional_session(
        self,
        series_id: UUID,
        payload: AdditionalSessionCreate,
        actor: User,
    ) -> LessonSession:
        """Add a make-up lesson outside the weekly pattern."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can add lessons")
        series = await self._lock_series(series_id)
        snapshot = await self._snapshot(series)
        if payload.lesson_date in snapshot.by_date or payload.lesson_date in snapshot.occurrences:
            raise ConflictException(f"Series already has a lesson on {payload.lesson_date.isoformat()}")

        lesson_session = self.repository.stage_session(
            series.id,
            payload.lesson_date,
            status=SessionStatusEnum.SCHEDULED,
            duration_minutes=payload.duration_minutes or series.duration_minutes,
            actor_id=actor.id,
            is_additional=True,
            notes=payload.notes,
        )
        await self.repository.flush()
        await self._record_session_event(
            actor,
            "lessons.session.added",
            lesson_session,
            {"duration_minutes": lesson_session.duration_minutes},
        )
        return lesson_session


async def get_lessons_service(session: AsyncSession = Depends(get_db_session)) -> LessonsService:
    """Dependency provider for lessons service."""
    return LessonsService(
        LessonsRepository(session),
        SchedulingRepository(session),
        AuditRepository(session),
    )
