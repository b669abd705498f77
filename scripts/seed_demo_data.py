"""Seed idempotent demo data for local/non-production environments."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import SessionLocal, close_engine
from app.core.enums import PaymentMethodEnum, RoleEnum, SeriesOwnerTypeEnum
from app.core.security import create_access_token
from app.modules.audit.repository import AuditRepository
from app.modules.billing.models import Payment
from app.modules.billing.repository import BillingRepository
from app.modules.billing.schemas import PaymentCreate
from app.modules.billing.service import BillingService
from app.modules.identity.models import User
from app.modules.identity.repository import IdentityRepository
from app.modules.identity.service import IdentityService
from app.modules.lessons.repository import LessonsRepository
from app.modules.scheduling.models import LessonSeries
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.scheduling.schemas import SeriesCreate
from app.modules.scheduling.service import SchedulingService

DEMO_ADMIN_EMAIL = "demo-admin@linguaschool.dev"
DEMO_TEACHER_EMAIL = "demo-teacher@linguaschool.dev"

# Fixed so that reseeding finds the same series.
DEMO_STUDENT_ID = UUID("00000000-0000-4000-8000-000000000001")
DEMO_SERIES_TITLE = "English B1, individual"
DEMO_SCHEDULE_DAYS = ("Пн", "Ср", "Пт")
DEMO_PERIOD_DAYS = 90
DEMO_PAYMENT_LESSONS = 8
DEMO_PRICE_PER_LESSON = Decimal("1500.00")


@dataclass(slots=True)
class SeedStats:
    users_created: int = 0
    series_created: bool = False
    series_id: str | None = None
    payment_created: bool = False
    attributed_dates: list[date] = field(default_factory=list)
    tokens: dict[str, str] = field(default_factory=dict)


async def _ensure_user(
    session: AsyncSession,
    *,
    email: str,
    full_name: str,
    role_name: RoleEnum,
) -> tuple[User, bool]:
    repository = IdentityRepository(session)
    role = await repository.get_role_by_name(role_name)
    if role is None:
        raise RuntimeError(f"Role {role_name} was not found after ensure_default_roles")

    user = await repository.get_user_by_email(email)
    if user is None:
        return await repository.create_user(email, full_name, role.id), True

    if user.role_id != role.id:
        user.role_id = role.id
    if not user.is_active:
        user.is_active = True
    await session.flush()
    await session.refresh(user, attribute_names=["role"])
    return user, False


async def _ensure_demo_series(session: AsyncSession, admin_user: User) -> tuple[LessonSeries, bool]:
    existing = await session.scalar(
        select(LessonSeries).where(
            LessonSeries.owner_id == DEMO_STUDENT_ID,
            LessonSeries.title == DEMO_SERIES_TITLE,
        ),
    )
    if existing is not None:
        return existing, False

    period_start = date.today()
    scheduling_service = SchedulingService(
        SchedulingRepository(session),
        LessonsRepository(session),
        AuditRepository(session),
    )
    series = await scheduling_service.create_series(
        SeriesCreate(
            owner_type=SeriesOwnerTypeEnum.INDIVIDUAL,
            owner_id=DEMO_STUDENT_ID,
            title=DEMO_SERIES_TITLE,
            schedule_days=list(DEMO_SCHEDULE_DAYS),
            start_time=time(18, 0),
            end_time=time(19, 0),
            teacher_name="Demo Teacher",
            room="101",
            period_start=period_start,
            period_end=period_start + timedelta(days=DEMO_PERIOD_DAYS),
            price_per_lesson=DEMO_PRICE_PER_LESSON,
        ),
        admin_user,
    )
    return series, True


async def _ensure_demo_payment(
    session: AsyncSession,
    admin_user: User,
    series: LessonSeries,
) -> tuple[bool, list[date]]:
    existing = await session.scalar(select(Payment).where(Payment.series_id == series.id))
    if existing is not None:
        return False, []

    billing_service = BillingService(
        repository=BillingRepository(session),
        lessons_repository=LessonsRepository(session),
        scheduling_repository=SchedulingRepository(session),
        audit_repository=AuditRepository(session),
    )
    allocation = await billing_service.create_payment(
        PaymentCreate(
            series_id=series.id,
            amount=DEMO_PRICE_PER_LESSON * DEMO_PAYMENT_LESSONS,
            payment_date=date.today(),
            lessons_count=DEMO_PAYMENT_LESSONS,
            method=PaymentMethodEnum.CARD,
            description="Demo package of lessons",
        ),
        admin_user,
    )
    return True, allocation.attributed_dates


async def _run_seed(*, allow_production: bool) -> SeedStats:
    settings = get_settings()
    app_env = settings.app_env.strip().lower()
    if app_env in {"production", "prod"} and not allow_production:
        raise RuntimeError(
            "Refusing to seed demo data in production. "
            "Re-run with --allow-production only if you are absolutely sure.",
        )

    stats = SeedStats()

    async with SessionLocal() as session:
        try:
            await IdentityService(IdentityRepository(session)).ensure_default_roles()

            admin_user, admin_created = await _ensure_user(
                session,
                email=DEMO_ADMIN_EMAIL,
                full_name="Demo Admin",
                role_name=RoleEnum.ADMIN,
            )
            teacher_user, teacher_created = await _ensure_user(
                session,
                email=DEMO_TEACHER_EMAIL,
                full_name="Demo Teacher",
                role_name=RoleEnum.TEACHER,
            )
            stats.users_created = sum([admin_created, teacher_created])

            series, stats.series_created = await _ensure_demo_series(session, admin_user)
            stats.series_id = str(series.id)
            stats.payment_created, stats.attributed_dates = await _ensure_demo_payment(
                session,
                admin_user,
                series,
            )

            await session.commit()
        except Exception:
            await session.rollback()
            raise

    stats.tokens = {
        "admin": create_access_token(str(admin_user.id), role=RoleEnum.ADMIN.value),
        "teacher": create_access_token(str(teacher_user.id), role=RoleEnum.TEACHER.value),
    }
    return stats


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Seed idempotent demo data for LinguaSchool (staff users, a Mon/Wed/Fri "
            "lesson series and a paid package of lessons)."
        ),
    )
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow seeding even when APP_ENV is production/prod.",
    )
    return parser


def _print_summary(stats: SeedStats) -> None:
    print("Demo seed completed.")
    print(f"- Users created: {stats.users_created}")
    print(f"- Series created: {stats.series_created}")
    print(f"- Series id: {stats.series_id}")
    print(f"- Payment created: {stats.payment_created}")
    if stats.attributed_dates:
        print(f"- Paid lessons: {', '.join(item.isoformat() for item in stats.attributed_dates)}")
    print("")
    print("Demo access tokens (non-production only):")
    for role_name, token in stats.tokens.items():
        print(f"- {role_name}: {token}")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    try:
        stats = asyncio.run(_run_seed(allow_production=args.allow_production))
    except Exception as exc:
        print(f"Demo seed failed: {exc}")
        return 1
    finally:
        asyncio.run(close_engine())

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
