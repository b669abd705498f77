"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """Staff roles."""

    ADMIN = "admin"
    MANAGER = "manager"
    TEACHER = "teacher"


class SeriesOwnerTypeEnum(StrEnum):
    """Who a lesson series belongs to."""

    INDIVIDUAL = "individual"
    GROUP = "group"


class ScheduleAttributeEnum(StrEnum):
    """Series attributes tracked by schedule change records."""

    TIME_WINDOW = "time_window"
    TEACHER = "teacher"
    ROOM = "room"


class SessionStatusEnum(StrEnum):
    """Lesson session status."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    ATTENDED = "attended"
    FREE = "free"
    PAID_ABSENCE = "paid_absence"
    PARTIAL_PAYMENT = "partial_payment"
    MAKEUP = "makeup"
    PENALTY = "penalty"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    RESCHEDULED_OUT = "rescheduled_out"


class SessionFollowUpEnum(StrEnum):
    """Status actions that open a dedicated flow instead of a plain write."""

    RESCHEDULE = "reschedule"
    SUBSTITUTE_TEACHER = "substitute_teacher"
    SUBSTITUTE_ROOM = "substitute_room"
    CHANGE_DURATION = "change_duration"


class PaymentMethodEnum(StrEnum):
    """How a payment was made."""

    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    ONLINE = "online"


class TransferDirectionEnum(StrEnum):
    """Payment transfer direction."""

    FORWARD = "forward"
    BACKWARD = "backward"


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
