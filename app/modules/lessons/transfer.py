"""Planning of payment attribution moves between sessions of one series.

Planning never writes: it looks at a snapshot of persisted sessions and the
series' generated occurrences and returns a TransferPlan. The lessons service
applies a plan by updating both rows in a single flush while holding the
series lock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Protocol
from uuid import UUID

from app.core.enums import SessionStatusEnum, TransferDirectionEnum
from app.modules.scheduling.recurrence import OccurrenceSequence

logger = logging.getLogger(__name__)

FORWARD_TRIGGER_STATUSES = frozenset({SessionStatusEnum.CANCELLED, SessionStatusEnum.FREE})
OPEN_SLOT_STATUSES = frozenset({None, SessionStatusEnum.SCHEDULED})


class SessionLike(Protocol):
    lesson_date: date
    status: SessionStatusEnum | None
    payment_id: UUID | None
    paid_minutes: int
    duration_minutes: int


@dataclass(frozen=True, slots=True)
class TransferPlan:
    """One attribution unit move: payment (and its minutes) from source to target."""

    direction: TransferDirectionEnum
    payment_id: UUID
    source_date: date
    target_date: date | None
    paid_minutes: int
    create_target: bool = False

    @property
    def is_exhausted(self) -> bool:
        """True when no slot could take the payment and it is left unattributed."""
        return self.target_date is None


def current_status(session: SessionLike | None) -> SessionStatusEnum:
    if session is None or session.status is None:
        return SessionStatusEnum.SCHEDULED
    return session.status


def is_paid(session: SessionLike | None) -> bool:
    return session is not None and session.payment_id is not None


def is_open_slot(session: SessionLike) -> bool:
    """Unpaid and scheduled: may receive a forwarded payment."""
    return session.payment_id is None and session.status in OPEN_SLOT_STATUSES


def is_reclaimable(session: SessionLike) -> bool:
    """Paid and still scheduled: may give its payment back to an earlier session."""
    return session.payment_id is not None and session.status in OPEN_SLOT_STATUSES


def needs_forward_transfer(session: SessionLike | None, new_status: SessionStatusEnum) -> bool:
    return is_paid(session) and new_status in FORWARD_TRIGGER_STATUSES


def needs_backward_reclamation(session: SessionLike | None, new_status: SessionStatusEnum) -> bool:
    return (
        new_status == SessionStatusEnum.SCHEDULED
        and not is_paid(session)
        and current_status(session) != SessionStatusEnum.SCHEDULED
    )


def _later_sessions(sessions: Iterable[SessionLike], after: date) -> list[SessionLike]:
    return sorted(
        (session for session in sessions if session.lesson_date > after),
        key=lambda session: session.lesson_date,
    )


def _clamp_minutes(
    paid_minutes: int,
    target_duration: int,
    payment_id: UUID,
    source_date: date,
    target_date: date,
) -> int:
    """Bound moved minutes by the target duration, logging any minutes dropped."""
    if paid_minutes <= target_duration:
        return paid_minutes
    logger.info(
        "Payment %s: %s paid minutes dropped moving %s -> %s (target lasts %s minutes)",
        payment_id,
        paid_minutes - target_duration,
        source_date,
        target_date,
        target_duration,
    )
    return target_duration


def plan_forward_transfer(
    origin: SessionLike,
    sessions: Iterable[SessionLike],
    occurrences: OccurrenceSequence,
    default_duration: int,
) -> TransferPlan | None:
    """Find where a paid session's payment goes when it is cancelled or made free.

    An existing later open slot wins over a generated date; a generated date
    is used only when it has no persisted row. Returns an exhausted plan when
    the series runs out of slots, and None when the origin holds no payment.
    """
    if origin.payment_id is None:
        return None

    sessions = list(sessions)
    paid_minutes = origin.paid_minutes or 0
    for candidate in _later_sessions(sessions, origin.lesson_date):
        if is_open_slot(candidate):
            return TransferPlan(
                direction=TransferDirectionEnum.FORWARD,
                payment_id=origin.payment_id,
                source_date=origin.lesson_date,
                target_date=candidate.lesson_date,
                paid_minutes=_clamp_minutes(
                    paid_minutes,
                    candidate.duration_minutes,
                    origin.payment_id,
                    origin.lesson_date,
                    candidate.lesson_date,
                ),
            )

    persisted_dates = {session.lesson_date for session in sessions}
    for occurrence in occurrences.after(origin.lesson_date):
        if occurrence not in persisted_dates:
            return TransferPlan(
                direction=TransferDirectionEnum.FORWARD,
                payment_id=origin.payment_id,
                source_date=origin.lesson_date,
                target_date=occurrence,
                paid_minutes=_clamp_minutes(
                    paid_minutes,
                    default_duration,
                    origin.payment_id,
                    origin.lesson_date,
                    occurrence,
                ),
                create_target=True,
            )

    return TransferPlan(
        direction=TransferDirectionEnum.FORWARD,
        payment_id=origin.payment_id,
        source_date=origin.lesson_date,
        target_date=None,
        paid_minutes=0,
    )


def plan_backward_reclamation(
    origin_date: date,
    origin_duration: int,
    sessions: Iterable[SessionLike],
) -> TransferPlan | None:
    """Find a later paid, still scheduled session to pull the payment back from."""
    for donor in _later_sessions(sessions, origin_date):
        if is_reclaimable(donor):
            return TransferPlan(
                direction=TransferDirectionEnum.BACKWARD,
                payment_id=donor.payment_id,
                source_date=donor.lesson_date,
                target_date=origin_date,
                paid_minutes=_clamp_minutes(
                    donor.paid_minutes or 0,
                    origin_duration,
                    donor.payment_id,
                    donor.lesson_date,
                    origin_date,
                ),
            )
    return None
