from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from app.core.enums import RoleEnum, SessionFollowUpEnum, SessionStatusEnum, TransferDirectionEnum
from app.modules.lessons.schemas import AdditionalSessionCreate, StatusChangeOutcomeRead, SubstituteRequest
from app.modules.lessons.service import UNATTRIBUTED_WARNING, LessonsService
from app.modules.scheduling.timeline import merge_timeline
from app.shared.exceptions import (
    BusinessRuleException,
    ConcurrencyConflictException,
    ConflictException,
    NotFoundException,
    UnauthorizedException,
)

P = uuid4()


@dataclass
class FakeSeries:
    id: UUID = field(default_factory=uuid4)
    schedule_days: list[str] = field(default_factory=lambda: ["monday", "wednesday", "friday"])
    period_start: date | None = date(2024, 1, 1)
    period_end: date | None = date(2024, 1, 12)
    duration_minutes: int = 60
    is_active: bool = True
    start_time: time | None = time(18, 0)
    end_time: time | None = time(19, 0)
    teacher_name: str | None = "Anna"
    room: str | None = "101"


@dataclass
class FakeSession:
    lesson_date: date
    status: SessionStatusEnum = SessionStatusEnum.SCHEDULED
    duration_minutes: int = 60
    paid_minutes: int = 0
    payment_id: UUID | None = None
    series_id: UUID | None = None
    id: UUID = field(default_factory=uuid4)
    notes: str | None = None
    is_additional: bool = False
    substitute_teacher: str | None = None
    substitute_room: str | None = None
    rescheduled_to: date | None = None
    rescheduled_from: date | None = None
    created_by_id: UUID | None = None
    updated_by_id: UUID | None = None
    created_at: datetime = field(default_factory=lambda: datetime(2024, 1, 1, tzinfo=UTC))
    updated_at: datetime = field(default_factory=lambda: datetime(2024, 1, 1, tzinfo=UTC))


class FakeLessonsRepository:
    def __init__(self, series: FakeSeries, sessions: list[FakeSession] | None = None) -> None:
        self.series = series
        self.rows: dict[date, FakeSession] = {}
        for item in sessions or []:
            item.series_id = series.id
            self.rows[item.lesson_date] = item
        self.staged: list[FakeSession] = []
        self.stage_calls = 0
        self.flushes = 0
        self.reads = 0

    async def list_sessions(self, series_id: UUID) -> list[FakeSession]:
        self.reads += 1
        return sorted(self.rows.values(), key=lambda item: item.lesson_date)

    def stage_session(
        self,
        series_id: UUID,
        lesson_date: date,
        status: SessionStatusEnum,
        duration_minutes: int,
        actor_id: UUID | None,
        paid_minutes: int = 0,
        payment_id: UUID | None = None,
        is_additional: bool = False,
        notes: str | None = None,
        **extra,
    ) -> FakeSession:
        self.stage_calls += 1
        row = FakeSession(
            lesson_date=lesson_date,
            status=status,
            duration_minutes=duration_minutes,
            paid_minutes=paid_minutes,
            payment_id=payment_id,
            series_id=series_id,
            notes=notes,
            is_additional=is_additional,
            created_by_id=actor_id,
            updated_by_id=actor_id,
            **extra,
        )
        self.staged.append(row)
        return row

    def stage_update(self, lesson_session: FakeSession, actor_id: UUID | None, **changes) -> FakeSession:
        self.stage_calls += 1
        for key, value in changes.items():
            setattr(lesson_session, key, value)
        lesson_session.updated_by_id = actor_id
        return lesson_session

    async def flush(self) -> None:
        self.flushes += 1
        for row in self.staged:
            if row.lesson_date in self.rows:
                raise ConcurrencyConflictException("duplicate lesson date")
            self.rows[row.lesson_date] = row
        self.staged.clear()


class FakeSchedulingRepository:
    def __init__(self, series: FakeSeries, lessons_repo: FakeLessonsRepository) -> None:
        self.series = series
        self.lessons_repo = lessons_repo
        self.locks = 0
        self.reads_at_lock: list[int] = []

    async def lock_series(self, series_id: UUID) -> FakeSeries | None:
        self.locks += 1
        self.reads_at_lock.append(self.lessons_repo.reads)
        return self.series if series_id == self.series.id else None


class FakeAuditRepository:
    def __init__(self) -> None:
        self.audit_logs: list[dict] = []
        self.outbox_events: list[dict] = []

    async def create_audit_log(
        self,
        actor_id: UUID | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict,
    ) -> None:
        self.audit_logs.append(
            {
                "actor_id": actor_id,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "payload": payload,
            },
        )

    async def create_outbox_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
    ) -> None:
        self.outbox_events.append(
            {
                "aggregate_type": aggregate_type,
                "aggregate_id": aggregate_id,
                "event_type": event_type,
                "payload": payload,
            },
        )


def make_actor(role: RoleEnum = RoleEnum.MANAGER) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), role=SimpleNamespace(name=role))


def make_service(
    sessions: list[FakeSession] | None = None,
    series: FakeSeries | None = None,
) -> tuple[LessonsService, FakeLessonsRepository, FakeAuditRepository, FakeSeries]:
    series = series or FakeSeries()
    lessons_repo = FakeLessonsRepository(series, sessions)
    audit_repo = FakeAuditRepository()
    service = LessonsService(lessons_repo, FakeSchedulingRepository(series, lessons_repo), audit_repo)
    return service, lessons_repo, audit_repo, series


def paid(lesson_date: date, payment_id: UUID = P, **fields) -> FakeSession:
    return FakeSession(lesson_date=lesson_date, payment_id=payment_id, paid_minutes=60, **fields)


def holders(repo: FakeLessonsRepository, payment_id: UUID) -> list[date]:
    return [row.lesson_date for row in repo.rows.values() if row.payment_id == payment_id]


@pytest.mark.asyncio
async def test_cancel_paid_session_moves_payment_to_earliest_unpaid_later_session() -> None:
    service, repo, audit_repo, series = make_service(
        [
            paid(date(2024, 1, 3)),
            FakeSession(lesson_date=date(2024, 1, 8)),
            FakeSession(lesson_date=date(2024, 1, 10)),
        ],
    )
    actor = make_actor()

    outcome = await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.CANCELLED, actor)

    origin = repo.rows[date(2024, 1, 3)]
    target = repo.rows[date(2024, 1, 8)]
    assert origin.status == SessionStatusEnum.CANCELLED
    assert origin.payment_id is None
    assert origin.paid_minutes == 0
    assert target.status == SessionStatusEnum.SCHEDULED
    assert target.payment_id == P
    assert target.paid_minutes == 60
    assert repo.rows[date(2024, 1, 10)].payment_id is None
    assert outcome.changed is True
    assert outcome.transfer.direction == TransferDirectionEnum.FORWARD
    assert outcome.transfer.target_date == date(2024, 1, 8)
    assert outcome.warnings == []
    assert repo.flushes == 1
    assert [log["action"] for log in audit_repo.audit_logs] == [
        "lessons.session.status_changed",
        "lessons.payment.transferred",
    ]
    assert all(log["actor_id"] == actor.id for log in audit_repo.audit_logs)


@pytest.mark.asyncio
async def test_forward_transfer_materializes_next_generated_date_when_no_row_is_open() -> None:
    service, repo, _, series = make_service([paid(date(2024, 1, 3))])

    outcome = await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.FREE, make_actor())

    assert outcome.transfer.create_target is True
    created = repo.rows[date(2024, 1, 5)]
    assert created.status == SessionStatusEnum.SCHEDULED
    assert created.payment_id == P
    assert created.paid_minutes == 60
    assert created.duration_minutes == series.duration_minutes
    assert holders(repo, P) == [date(2024, 1, 5)]


@pytest.mark.asyncio
async def test_forward_transfer_clamps_paid_minutes_to_target_duration() -> None:
    service, repo, _, series = make_service(
        [paid(date(2024, 1, 3)), FakeSession(lesson_date=date(2024, 1, 5), duration_minutes=45)],
    )

    await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.CANCELLED, make_actor())

    target = repo.rows[date(2024, 1, 5)]
    assert target.payment_id == P
    assert target.paid_minutes == 45


@pytest.mark.asyncio
async def test_cancel_last_paid_session_leaves_payment_unattributed(
    caplog: pytest.LogCaptureFixture,
) -> None:
    series = FakeSeries(period_end=date(2024, 1, 3))
    service, repo, audit_repo, _ = make_service([paid(date(2024, 1, 3))], series=series)

    with caplog.at_level(logging.WARNING, logger="app.modules.lessons.service"):
        outcome = await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.CANCELLED, make_actor())

    assert outcome.warnings == [UNATTRIBUTED_WARNING]
    assert outcome.transfer.is_exhausted is True
    assert list(repo.rows) == [date(2024, 1, 3)]
    assert repo.rows[date(2024, 1, 3)].payment_id is None
    assert holders(repo, P) == []
    assert "lessons.payment.unattributed" in [event["event_type"] for event in audit_repo.outbox_events]
    assert "left unattributed" in caplog.text


@pytest.mark.asyncio
async def test_revert_cancelled_session_reclaims_payment_from_later_scheduled_session() -> None:
    service, repo, audit_repo, series = make_service(
        [
            FakeSession(lesson_date=date(2024, 1, 10), status=SessionStatusEnum.CANCELLED),
            paid(date(2024, 1, 12)),
        ],
    )

    outcome = await service.set_status(series.id, date(2024, 1, 10), SessionStatusEnum.SCHEDULED, make_actor())

    assert outcome.transfer.direction == TransferDirectionEnum.BACKWARD
    assert repo.rows[date(2024, 1, 10)].status == SessionStatusEnum.SCHEDULED
    assert repo.rows[date(2024, 1, 10)].payment_id == P
    assert repo.rows[date(2024, 1, 10)].paid_minutes == 60
    assert repo.rows[date(2024, 1, 12)].payment_id is None
    assert repo.rows[date(2024, 1, 12)].paid_minutes == 0
    assert repo.flushes == 1
    assert audit_repo.outbox_events[-1]["event_type"] == "lessons.payment.transferred"


@pytest.mark.asyncio
async def test_backward_reclamation_skips_paid_sessions_that_are_no_longer_scheduled() -> None:
    service, repo, _, series = make_service(
        [
            FakeSession(lesson_date=date(2024, 1, 8), status=SessionStatusEnum.FREE),
            paid(date(2024, 1, 10), status=SessionStatusEnum.COMPLETED),
        ],
    )

    outcome = await service.set_status(series.id, date(2024, 1, 8), SessionStatusEnum.SCHEDULED, make_actor())

    assert outcome.changed is True
    assert outcome.transfer is None
    assert repo.rows[date(2024, 1, 8)].payment_id is None
    assert repo.rows[date(2024, 1, 10)].payment_id == P


@pytest.mark.asyncio
async def test_scheduled_on_virtual_session_performs_no_writes() -> None:
    service, repo, audit_repo, series = make_service([paid(date(2024, 1, 12))])

    outcome = await service.set_status(series.id, date(2024, 1, 8), SessionStatusEnum.SCHEDULED, make_actor())

    assert outcome.changed is False
    assert outcome.session is None
    assert repo.stage_calls == 0
    assert repo.flushes == 0
    assert audit_repo.audit_logs == []
    assert holders(repo, P) == [date(2024, 1, 12)]


@pytest.mark.asyncio
async def test_repeating_the_same_status_is_a_no_op() -> None:
    service, repo, audit_repo, series = make_service(
        [FakeSession(lesson_date=date(2024, 1, 3), status=SessionStatusEnum.CANCELLED)],
    )

    outcome = await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.CANCELLED, make_actor())

    assert outcome.changed is False
    assert repo.stage_calls == 0
    assert repo.flushes == 0
    assert audit_repo.outbox_events == []


@pytest.mark.asyncio
async def test_plain_status_on_virtual_date_persists_row_with_nominal_duration() -> None:
    service, repo, _, series = make_service()
    actor = make_actor(RoleEnum.TEACHER)

    outcome = await service.set_status(series.id, date(2024, 1, 5), SessionStatusEnum.ATTENDED, actor)

    row = repo.rows[date(2024, 1, 5)]
    assert outcome.session is row
    assert row.status == SessionStatusEnum.ATTENDED
    assert row.duration_minutes == 60
    assert row.created_by_id == actor.id
    assert outcome.transfer is None


@pytest.mark.asyncio
async def test_follow_up_status_is_returned_without_writes() -> None:
    service, repo, audit_repo, series = make_service([paid(date(2024, 1, 3))])

    outcome = await service.set_status(
        series.id,
        date(2024, 1, 3),
        SessionFollowUpEnum.RESCHEDULE,
        make_actor(),
    )

    assert outcome.follow_up == SessionFollowUpEnum.RESCHEDULE
    assert outcome.changed is False
    assert repo.stage_calls == 0
    assert audit_repo.audit_logs == []
    assert repo.rows[date(2024, 1, 3)].payment_id == P


@pytest.mark.asyncio
async def test_rescheduled_out_session_is_terminal() -> None:
    service, _, _, series = make_service(
        [FakeSession(lesson_date=date(2024, 1, 3), status=SessionStatusEnum.RESCHEDULED_OUT)],
    )

    with pytest.raises(BusinessRuleException):
        await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.SCHEDULED, make_actor())


@pytest.mark.asyncio
async def test_cancelled_session_can_only_return_to_scheduled() -> None:
    service, _, _, series = make_service(
        [FakeSession(lesson_date=date(2024, 1, 3), status=SessionStatusEnum.CANCELLED)],
    )

    with pytest.raises(BusinessRuleException):
        await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.COMPLETED, make_actor())


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [SessionStatusEnum.RESCHEDULED, SessionStatusEnum.RESCHEDULED_OUT])
async def test_reschedule_statuses_cannot_be_set_directly(status: SessionStatusEnum) -> None:
    service, _, _, series = make_service()

    with pytest.raises(BusinessRuleException):
        await service.set_status(series.id, date(2024, 1, 3), status, make_actor())


@pytest.mark.asyncio
async def test_set_status_rejects_date_outside_series_pattern() -> None:
    service, repo, _, series = make_service()

    with pytest.raises(BusinessRuleException):
        await service.set_status(series.id, date(2024, 1, 2), SessionStatusEnum.CANCELLED, make_actor())
    assert repo.flushes == 0


@pytest.mark.asyncio
async def test_set_status_for_unknown_series_raises_not_found() -> None:
    service, repo, _, _ = make_service()

    with pytest.raises(NotFoundException):
        await service.set_status(uuid4(), date(2024, 1, 3), SessionStatusEnum.CANCELLED, make_actor())
    assert repo.reads == 0


@pytest.mark.asyncio
async def test_set_status_rejects_inactive_series() -> None:
    service, repo, _, series = make_service(series=FakeSeries(is_active=False))

    with pytest.raises(BusinessRuleException):
        await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.CANCELLED, make_actor())
    assert repo.reads == 0
    assert repo.flushes == 0


@pytest.mark.asyncio
async def test_bulk_cancel_applies_dates_in_ascending_order() -> None:
    first_payment, second_payment = uuid4(), uuid4()
    service, repo, _, series = make_service(
        [paid(date(2024, 1, 3), first_payment), paid(date(2024, 1, 5), second_payment)],
    )

    outcomes = await service.bulk_set_status(
        series.id,
        [date(2024, 1, 5), date(2024, 1, 3)],
        SessionStatusEnum.CANCELLED,
        make_actor(),
    )

    assert [outcome.lesson_date for outcome in outcomes] == [date(2024, 1, 3), date(2024, 1, 5)]
    assert holders(repo, first_payment) == [date(2024, 1, 8)]
    assert holders(repo, second_payment) == [date(2024, 1, 10)]


@pytest.mark.asyncio
async def test_cancel_then_revert_restores_single_holder_and_minutes() -> None:
    service, repo, _, series = make_service([paid(date(2024, 1, 3))])
    actor = make_actor()

    await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.CANCELLED, actor)
    await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.SCHEDULED, actor)

    assert holders(repo, P) == [date(2024, 1, 3)]
    assert sum(row.paid_minutes for row in repo.rows.values()) == 60
    assert all(0 <= row.paid_minutes <= row.duration_minutes for row in repo.rows.values())


@pytest.mark.asyncio
async def test_outcome_serializes_with_transfer_details() -> None:
    service, _, _, series = make_service([paid(date(2024, 1, 3))])

    outcome = await service.set_status(series.id, date(2024, 1, 3), SessionStatusEnum.CANCELLED, make_actor())
    body = StatusChangeOutcomeRead.model_validate(outcome)

    assert body.transfer.target_date == date(2024, 1, 5)
    assert body.transfer.is_exhausted is False
    assert body.session.status == SessionStatusEnum.CANCELLED


@pytest.mark.asyncio
async def test_reschedule_moves_payment_with_lesson() -> None:
    service, repo, audit_repo, series = make_service([paid(date(2024, 1, 3))])

    origin, destination = await service.reschedule_session(
        series.id,
        date(2024, 1, 3),
        date(2024, 1, 4),
        make_actor(),
    )

    assert origin.status == SessionStatusEnum.RESCHEDULED_OUT
    assert origin.rescheduled_to == date(2024, 1, 4)
    assert origin.payment_id is None
    assert destination.status == SessionStatusEnum.RESCHEDULED
    assert destination.rescheduled_from == date(2024, 1, 3)
    assert destination.is_additional is True
    assert destination.payment_id == P
    assert destination.paid_minutes == 60
    assert holders(repo, P) == [date(2024, 1, 4)]
    assert audit_repo.audit_logs[-1]["action"] == "lessons.session.rescheduled"


@pytest.mark.asyncio
async def test_reschedule_onto_occupied_date_conflicts() -> None:
    service, repo, _, series = make_service(
        [paid(date(2024, 1, 3)), FakeSession(lesson_date=date(2024, 1, 5), status=SessionStatusEnum.COMPLETED)],
    )

    with pytest.raises(ConflictException):
        await service.reschedule_session(series.id, date(2024, 1, 3), date(2024, 1, 5), make_actor())
    assert repo.rows[date(2024, 1, 3)].payment_id == P


@pytest.mark.asyncio
async def test_change_duration_below_paid_minutes_is_rejected() -> None:
    service, repo, _, series = make_service([paid(date(2024, 1, 3))])

    with pytest.raises(BusinessRuleException):
        await service.change_duration(series.id, date(2024, 1, 3), 30, make_actor())
    assert repo.rows[date(2024, 1, 3)].duration_minutes == 60


@pytest.mark.asyncio
async def test_change_duration_on_virtual_date_persists_override() -> None:
    service, repo, audit_repo, series = make_service()

    row = await service.change_duration(series.id, date(2024, 1, 8), 90, make_actor())

    assert row.duration_minutes == 90
    assert repo.rows[date(2024, 1, 8)] is row
    assert audit_repo.audit_logs[0]["payload"]["from_minutes"] == 60


@pytest.mark.asyncio
async def test_teacher_cannot_change_duration() -> None:
    service, _, _, series = make_service()

    with pytest.raises(UnauthorizedException):
        await service.change_duration(series.id, date(2024, 1, 8), 90, make_actor(RoleEnum.TEACHER))


@pytest.mark.asyncio
async def test_substitute_teacher_is_stored_on_the_session() -> None:
    service, _, _, series = make_service()

    row = await service.substitute(
        series.id,
        date(2024, 1, 10),
        SubstituteRequest(teacher="Boris"),
        make_actor(),
    )

    assert row.substitute_teacher == "Boris"
    assert row.substitute_room is None
    assert row.status == SessionStatusEnum.SCHEDULED


@pytest.mark.asyncio
async def test_update_notes_with_same_text_does_not_write() -> None:
    service, repo, _, series = make_service([FakeSession(lesson_date=date(2024, 1, 3), notes="bring book")])

    await service.update_notes(series.id, date(2024, 1, 3), "bring book", make_actor())

    assert repo.stage_calls == 0


@pytest.mark.asyncio
async def test_add_additional_session_outside_pattern() -> None:
    service, repo, _, series = make_service()

    row = await service.add_additional_session(
        series.id,
        AdditionalSessionCreate(lesson_date=date(2024, 1, 6), duration_minutes=45),
        make_actor(),
    )

    assert row.is_additional is True
    assert row.duration_minutes == 45
    assert repo.rows[date(2024, 1, 6)] is row


@pytest.mark.asyncio
async def test_add_additional_session_on_existing_lesson_date_conflicts() -> None:
    service, _, _, series = make_service()

    with pytest.raises(ConflictException):
        await service.add_additional_session(
            series.id,
            AdditionalSessionCreate(lesson_date=date(2024, 1, 5)),
            make_actor(),
        )


@pytest.mark.asyncio
async def test_reschedule_onto_free_pattern_date_conflicts() -> None:
    service, repo, _, series = make_service([paid(date(2024, 1, 3))])

    with pytest.raises(ConflictException):
        await service.reschedule_session(series.id, date(2024, 1, 3), date(2024, 1, 5), make_actor())

    assert repo.flushes == 0
    assert date(2024, 1, 5) not in repo.rows
    assert repo.rows[date(2024, 1, 3)].status == SessionStatusEnum.SCHEDULED
    assert holders(repo, P) == [date(2024, 1, 3)]


@pytest.mark.asyncio
async def test_reschedule_keeps_every_regular_lesson_on_the_timeline() -> None:
    service, repo, _, series = make_service([paid(date(2024, 1, 3))])

    await service.reschedule_session(series.id, date(2024, 1, 3), date(2024, 1, 6), make_actor())

    entries = merge_timeline(series, await repo.list_sessions(series.id))
    live = [entry.lesson_date.day for entry in entries if entry.status != SessionStatusEnum.RESCHEDULED_OUT]
    assert live == [1, 5, 6, 8, 10, 12]
    assert holders(repo, P) == [date(2024, 1, 6)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operation",
    [
        lambda service, series, actor: service.set_status(
            series.id, date(2024, 1, 3), SessionStatusEnum.CANCELLED, actor
        ),
        lambda service, series, actor: service.bulk_set_status(
            series.id, [date(2024, 1, 5), date(2024, 1, 3)], SessionStatusEnum.CANCELLED, actor
        ),
        lambda service, series, actor: service.reschedule_session(
            series.id, date(2024, 1, 3), date(2024, 1, 4), actor
        ),
    ],
    ids=["set_status", "bulk_set_status", "reschedule_session"],
)
async def test_mutations_lock_series_once_before_reading_sessions(operation) -> None:
    service, repo, _, series = make_service([paid(date(2024, 1, 3))])

    await operation(service, series, make_actor())

    assert service.scheduling_repository.locks == 1
    assert service.scheduling_repository.reads_at_lock == [0]
    assert repo.reads >= 1


@pytest.mark.asyncio
async def test_mutation_on_unknown_series_fails_before_reading_sessions() -> None:
    service, repo, _, _ = make_service([paid(date(2024, 1, 3))])

    with pytest.raises(NotFoundException):
        await service.reschedule_session(uuid4(), date(2024, 1, 3), date(2024, 1, 4), make_actor())
    with pytest.raises(NotFoundException):
        await service.bulk_set_status(uuid4(), [date(2024, 1, 3)], SessionStatusEnum.CANCELLED, make_actor())

    assert repo.reads == 0
    assert repo.flushes == 0
