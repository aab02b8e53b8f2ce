"""Audit event model definition."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, String, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class AuditEvent(Base):
    """Audit trail entry with before and after snapshots of a booking change."""

    __tablename__ = "audit_events"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False, index=True)

    # What changed
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    actor: Mapped[str | None] = mapped_column(String(255), nullable=True)  # Who made the change

    # Snapshots for the audit trail
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        index=True  # Index for audit queries
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("length(entity_type) > 0", name="ck_audit_event_entity_type_not_empty"),
        CheckConstraint("length(action) > 0", name="ck_audit_event_action_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEvent(id={self.id}, entity={self.entity_type}:{self.entity_id}, "
            f"action='{self.action}', actor='{self.actor}')>"
        )
