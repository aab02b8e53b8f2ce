"""Supplier model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class Supplier(Base):
    """Supplier whose contracted inventory can be consumed by bookings."""

    __tablename__ = "suppliers"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    # Owning organization
    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False, index=True)

    # Supplier information
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("org_id", "name", name="uq_supplier_org_name"),
    )

    def __repr__(self) -> str:
        return f"<Supplier(id={self.id}, org_id={self.org_id}, name='{self.name}')>"
