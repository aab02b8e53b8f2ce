"""Allocation record and inventory pool model definitions."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .supplier import Supplier


class AllocationType(str, Enum):
    """Allocation type enumeration."""
    COMMITTED = "committed"
    FREESALE = "freesale"
    ON_REQUEST = "on_request"


def remaining_units(quantity: int | None, booked: int, held: int, unbounded: int) -> int:
    """Units still sellable on a counter; unbounded counters report the sentinel."""
    if quantity is None:
        return unbounded
    return quantity - booked - held


class InventoryPool(Base):
    """Shared capacity counter consumed by several allocation records."""

    __tablename__ = "inventory_pools"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Capacity counters; quantity NULL means unbounded
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    held: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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

    # Constraints
    __table_args__ = (
        CheckConstraint("booked >= 0", name="ck_inventory_pool_booked_non_negative"),
        CheckConstraint("held >= 0", name="ck_inventory_pool_held_non_negative"),
        CheckConstraint(
            "quantity IS NULL OR booked + held <= quantity",
            name="ck_inventory_pool_within_quantity"
        ),
    )

    def __repr__(self) -> str:
        return f"<InventoryPool(id={self.id}, name='{self.name}', booked={self.booked}/{self.quantity})>"


class AllocationRecord(Base):
    """Capacity for one (product variant, supplier, date) tuple."""

    __tablename__ = "allocation_records"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    # Scope
    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False)
    product_variant_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False
    )
    supplier_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=False
    )
    inventory_pool_id: Mapped[UUID | None] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("inventory_pools.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    service_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Capacity counters; quantity NULL means unbounded (freesale)
    allocation_type: Mapped[AllocationType] = mapped_column(
        String(20),
        nullable=False,
        default=AllocationType.COMMITTED
    )
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    held: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Cost information
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Sellability flags
    stop_sell: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blackout: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

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

    # Constraints
    __table_args__ = (
        CheckConstraint("booked >= 0", name="ck_allocation_booked_non_negative"),
        CheckConstraint("held >= 0", name="ck_allocation_held_non_negative"),
        CheckConstraint(
            "quantity IS NULL OR booked + held <= quantity",
            name="ck_allocation_within_quantity"
        ),
        CheckConstraint("unit_cost >= 0", name="ck_allocation_unit_cost_non_negative"),
        CheckConstraint("length(currency) = 3", name="ck_allocation_currency_length"),
        UniqueConstraint(
            "org_id", "product_variant_id", "supplier_id", "service_date",
            name="uq_allocation_variant_supplier_date"
        ),
        Index("ix_allocation_records_lookup", "org_id", "product_variant_id", "service_date"),
    )

    # Relationships
    supplier: Mapped["Supplier"] = relationship("Supplier")
    inventory_pool: Mapped["InventoryPool | None"] = relationship("InventoryPool")

    def available_units(self, unbounded: int) -> int:
        """Units still sellable on this record alone, ignoring any pool."""
        return remaining_units(self.quantity, self.booked, self.held, unbounded)

    def __repr__(self) -> str:
        return (
            f"<AllocationRecord(id={self.id}, variant={self.product_variant_id}, "
            f"supplier={self.supplier_id}, date={self.service_date}, booked={self.booked}/{self.quantity})>"
        )
