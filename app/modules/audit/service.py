"""Audit business logic layer."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import OutboxStatusEnum, RoleEnum
from app.modules.audit.models import AuditLog, OutboxEvent
from app.modules.audit.repository import AuditRepository
from app.modules.identity.models import User
from app.modules.identity.service import OFFICE_ROLES, ensure_role
from app.shared.exceptions import NotFoundException, UnauthorizedException
from app.shared.utils import utc_now


class AuditService:
    """Read access to the audit trail and outbox hand-off for integrations."""

    def __init__(self, repository: AuditRepository) -> None:
        self.repository = repository

    async def list_logs(
        self,
        actor: User,
        limit: int,
        offset: int,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> tuple[list[AuditLog], int]:
        """List audit logs (office staff only)."""
        ensure_role(actor, OFFICE_ROLES, "Only office staff can view audit logs")
        return await self.repository.list_audit_logs(
            limit=limit,
            offset=offset,
            entity_type=entity_type,
            entity_id=entity_id,
        )

    async def list_pending_outbox(self, actor: User, limit: int) -> list[OutboxEvent]:
        """List pending outbox events (admin only)."""
        if actor.role.name != RoleEnum.ADMIN:
            raise UnauthorizedException("Only admin can view outbox")
        return await self.repository.list_pending_outbox(limit)

    async def mark_processed(self, event_id: UUID, actor: User) -> OutboxEvent:
        """Acknowledge an outbox event delivered by an integration (admin only)."""
        if actor.role.name != RoleEnum.ADMIN:
            raise UnauthorizedException("Only admin can acknowledge outbox events")
        event = await self.repository.get_outbox_event_by_id(event_id)
        if event is None:
            raise NotFoundException("Outbox event not found")
        if event.status == OutboxStatusEnum.PROCESSED:
            return event
        return await self.repository.mark_outbox_processed(event, utc_now())


async def get_audit_service(session: AsyncSession = Depends(get_db_session)) -> AuditService:
    """Dependency provider for audit service."""
    return AuditService(AuditRepository(session))
