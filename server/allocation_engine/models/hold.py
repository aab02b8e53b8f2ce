"""Inventory hold model definitions."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking


class HoldStatus(str, Enum):
    """Hold status enumeration."""
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    RELEASED = "released"
    EXPIRED = "expired"


class Hold(Base):
    """Temporary reservation of supplier capacity, counted in ``held`` until it is resolved."""

    __tablename__ = "holds"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False, index=True)

    # Hold details
    status: Mapped[HoldStatus] = mapped_column(
        String(20),
        nullable=False,
        default=HoldStatus.ACTIVE,
        index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(50), nullable=False)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Requested items as submitted, replayed into the booking on confirmation
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    booking_id: Mapped[UUID | None] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    # Relationships
    booking: Mapped["Booking | None"] = relationship("Booking")
    allocations: Mapped[list["HoldAllocation"]] = relationship(
        "HoldAllocation",
        back_populates="hold",
        cascade="all, delete-orphan",
        order_by="[HoldAllocation.item_index, HoldAllocation.service_date]",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Hold(id={self.id}, status={self.status}, expires_at={self.expires_at})>"


class HoldAllocation(Base):
    """Units of one allocation record held for one night of a requested item."""

    __tablename__ = "hold_allocations"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False)
    hold_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("holds.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Supplier chosen when the hold was placed
    product_variant_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("product_variants.id", ondelete="RESTRICT"),
        nullable=False
    )
    supplier_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False
    )
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    allocation_record_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("allocation_records.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    inventory_pool_id: Mapped[UUID | None] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("inventory_pools.id", ondelete="RESTRICT"),
        nullable=True
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    selling_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("hold_id", "item_index", "service_date", name="uq_hold_allocation_item_night"),
        CheckConstraint("quantity > 0", name="ck_hold_allocation_quantity_positive"),
    )

    # Relationships
    hold: Mapped["Hold"] = relationship("Hold", back_populates="allocations")

    def __repr__(self) -> str:
        return (
            f"<HoldAllocation(hold_id={self.hold_id}, item_index={self.item_index}, "
            f"service_date={self.service_date}, allocation_record_id={self.allocation_record_id})>"
        )
