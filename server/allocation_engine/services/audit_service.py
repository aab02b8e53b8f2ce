"""Audit trail writer for booking changes."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.audit import AuditEvent
from ..models.booking import Booking
from ..schemas.booking import BookingItemResult, BookingSummary

logger = logging.getLogger(__name__)


def booking_snapshot(booking: Booking) -> dict[str, Any]:
    """JSON-safe snapshot of a booking header and its items."""
    snapshot = BookingSummary.model_validate(booking).model_dump(mode="json")
    snapshot["items"] = [
        BookingItemResult.model_validate(item).model_dump(mode="json")
        for item in booking.items
    ]
    return snapshot


class AuditService:
    """Records audit events inside the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def record(
        self,
        org_id: UUID,
        entity_type: str,
        entity_id: UUID,
        action: str,
        actor: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None
    ) -> AuditEvent:
        """
        Add an audit event to the session.

        The event is flushed and committed with the surrounding unit of work,
        so a rolled-back change never leaves an audit row behind.
        """
        event = AuditEvent(
            org_id=org_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor=actor,
            old_values=old_values,
            new_values=new_values,
        )
        self.db.add(event)

        logger.info(
            "Audit event recorded",
            extra={
                "org_id": str(org_id),
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "actor": actor
            }
        )

        return event

    async def list_events(self, org_id: UUID, entity_id: UUID) -> list[AuditEvent]:
        """List audit events for an entity, oldest first."""
        stmt = (
            select(AuditEvent)
            .where(AuditEvent.org_id == org_id, AuditEvent.entity_id == str(entity_id))
            .order_by(AuditEvent.created_at.asc(), AuditEvent.id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
