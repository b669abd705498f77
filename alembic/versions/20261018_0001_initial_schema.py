"""Initial schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 10:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


role_enum = sa.Enum("admin", "manager", "teacher", name="role_enum", native_enum=False)
series_owner_type_enum = sa.Enum("individual", "group", name="series_owner_type_enum", native_enum=False)
schedule_attribute_enum = sa.Enum(
    "time_window",
    "teacher",
    "room",
    name="schedule_attribute_enum",
    native_enum=False,
)
session_status_enum = sa.Enum(
    "scheduled",
    "completed",
    "attended",
    "free",
    "paid_absence",
    "partial_payment",
    "makeup",
    "penalty",
    "cancelled",
    "rescheduled",
    "rescheduled_out",
    name="session_status_enum",
    native_enum=False,
)
payment_method_enum = sa.Enum("cash", "card", "transfer", "online", name="payment_method_enum", native_enum=False)
outbox_status_enum = sa.Enum("pending", "processed", "failed", name="outbox_status_enum", native_enum=False)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def _user_fk(table: str, column: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column],
        ["users.id"],
        name=f"fk_{table}_{column}_users",
        ondelete="SET NULL",
    )


def upgrade() -> None:
    op.create_table(
        "roles",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("name", role_enum, nullable=False),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    op.create_table(
        "users",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_users_role_id_roles", ondelete="RESTRICT"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=False)

    op.create_table(
        "lesson_series",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("owner_type", series_owner_type_enum, nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("schedule_days", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("teacher_name", sa.String(length=255), nullable=True),
        sa.Column("room", sa.String(length=128), nullable=True),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price_per_lesson", sa.Numeric(10, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        _user_fk("lesson_series", "created_by_id"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_lesson_series_duration_positive"),
        sa.CheckConstraint(
            "period_start IS NULL OR period_end IS NULL OR period_start <= period_end",
            name="ck_lesson_series_period_ordered",
        ),
    )
    op.create_index("ix_lesson_series_owner_id", "lesson_series", ["owner_id"], unique=False)

    op.create_table(
        "schedule_change_records",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("series_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("attribute", schedule_attribute_enum, nullable=False),
        sa.Column("old_value", sa.String(length=255), nullable=True),
        sa.Column("new_value", sa.String(length=255), nullable=True),
        sa.Column("applied_from", sa.Date(), nullable=False),
        sa.Column("applied_to", sa.Date(), nullable=True),
        sa.Column("changed_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["series_id"],
            ["lesson_series.id"],
            name="fk_schedule_change_records_series_id_lesson_series",
            ondelete="CASCADE",
        ),
        _user_fk("schedule_change_records", "changed_by_id"),
        sa.CheckConstraint(
            "applied_to IS NULL OR applied_from <= applied_to",
            name="ck_schedule_change_records_applied_range_ordered",
        ),
    )
    op.create_index(
        "ix_schedule_change_records_series_id",
        "schedule_change_records",
        ["series_id"],
        unique=False,
    )
    op.create_index(
        "ix_schedule_change_records_applied_from",
        "schedule_change_records",
        ["applied_from"],
        unique=False,
    )

    op.create_table(
        "payments",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("series_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("lessons_count", sa.Integer(), nullable=False),
        sa.Column("method", payment_method_enum, nullable=False),
        sa.Column("description", sa.String(length=512), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["series_id"],
            ["lesson_series.id"],
            name="fk_payments_series_id_lesson_series",
            ondelete="SET NULL",
        ),
        _user_fk("payments", "created_by_id"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.CheckConstraint("lessons_count >= 0", name="ck_payments_lessons_count_non_negative"),
    )
    op.create_index("ix_payments_series_id", "payments", ["series_id"], unique=False)
    op.create_index("ix_payments_payment_date", "payments", ["payment_date"], unique=False)

    op.create_table(
        "lesson_sessions",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("series_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("lesson_date", sa.Date(), nullable=False),
        sa.Column("status", session_status_enum, nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("paid_minutes", sa.Integer(), nullable=False),
        sa.Column("payment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_additional", sa.Boolean(), nullable=False),
        sa.Column("substitute_teacher", sa.String(length=255), nullable=True),
        sa.Column("substitute_room", sa.String(length=128), nullable=True),
        sa.Column("rescheduled_to", sa.Date(), nullable=True),
        sa.Column("rescheduled_from", sa.Date(), nullable=True),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("updated_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["series_id"],
            ["lesson_series.id"],
            name="fk_lesson_sessions_series_id_lesson_series",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["payment_id"],
            ["payments.id"],
            name="fk_lesson_sessions_payment_id_payments",
            ondelete="SET NULL",
        ),
        _user_fk("lesson_sessions", "created_by_id"),
        _user_fk("lesson_sessions", "updated_by_id"),
        sa.UniqueConstraint("series_id", "lesson_date", name="uq_lesson_sessions_series_id_lesson_date"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_lesson_sessions_duration_positive"),
        sa.CheckConstraint("paid_minutes >= 0", name="ck_lesson_sessions_paid_minutes_non_negative"),
        sa.CheckConstraint(
            "paid_minutes <= duration_minutes",
            name="ck_lesson_sessions_paid_minutes_within_duration",
        ),
    )
    op.create_index("ix_lesson_sessions_series_id", "lesson_sessions", ["series_id"], unique=False)
    op.create_index("ix_lesson_sessions_lesson_date", "lesson_sessions", ["lesson_date"], unique=False)
    op.create_index("ix_lesson_sessions_status", "lesson_sessions", ["status"], unique=False)
    op.create_index("ix_lesson_sessions_payment_id", "lesson_sessions", ["payment_id"], unique=False)

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"], name="fk_audit_logs_actor_id_users", ondelete="SET NULL"),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"], unique=False)
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"], unique=False)

    op.create_table(
        "outbox_events",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("aggregate_type", sa.String(length=128), nullable=False),
        sa.Column("aggregate_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", outbox_status_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_outbox_events_aggregate_type", "outbox_events", ["aggregate_type"], unique=False)
    op.create_index("ix_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"], unique=False)
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"], unique=False)
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_outbox_events_status", table_name="outbox_events")
    op.drop_index("ix_outbox_events_event_type", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_id", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_type", table_name="outbox_events")
    op.drop_table("outbox_events")

    op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity_type", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_lesson_sessions_payment_id", table_name="lesson_sessions")
    op.drop_index("ix_lesson_sessions_status", table_name="lesson_sessions")
    op.drop_index("ix_lesson_sessions_lesson_date", table_name="lesson_sessions")
    op.drop_index("ix_lesson_sessions_series_id", table_name="lesson_sessions")
    op.drop_table("lesson_sessions")

    op.drop_index("ix_payments_payment_date", table_name="payments")
    op.drop_index("ix_payments_series_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_schedule_change_records_applied_from", table_name="schedule_change_records")
    op.drop_index("ix_schedule_change_records_series_id", table_name="schedule_change_records")
    op.drop_table("schedule_change_records")

    op.drop_index("ix_lesson_series_owner_id", table_name="lesson_series")
    op.drop_table("lesson_series")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("roles")
