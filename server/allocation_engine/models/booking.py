"""Booking, booking item and passenger model definitions."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingItemState(str, Enum):
    """Booking item state enumeration."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(Base):
    """Booking aggregate root; totals are always derived from its items."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False, index=True)

    # Booking details
    reference: Mapped[str] = mapped_column(String(64), nullable=False)
    channel: Mapped[str] = mapped_column(String(50), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.CONFIRMED,
        index=True
    )

    # Derived totals over confirmed items
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_margin: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    # Cancellation
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

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
        UniqueConstraint("org_id", "reference", name="uq_booking_org_reference"),
        CheckConstraint("length(reference) > 0", name="ck_booking_reference_not_empty"),
        CheckConstraint("length(currency) = 3", name="ck_booking_currency_length"),
    )

    # Relationships
    items: Mapped[list["BookingItem"]] = relationship(
        "BookingItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingItem.line_number"
    )
    passengers: Mapped[list["Passenger"]] = relationship(
        "Passenger",
        back_populates="booking",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, reference='{self.reference}', status={self.status}, "
            f"total_price={self.total_price})>"
        )


class BookingItem(Base):
    """One line of a booking, bound to the supplier chosen at commit time."""

    __tablename__ = "booking_items"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False)
    booking_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # What was booked and from whom
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

    # Service window and pax
    service_start: Mapped[date] = mapped_column(Date, nullable=False)
    service_end: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    adults: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Pricing per unit and per line
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    margin: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_margin: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    state: Mapped[BookingItemState] = mapped_column(
        String(20),
        nullable=False,
        default=BookingItemState.CONFIRMED
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_booking_item_quantity_positive"),
        CheckConstraint("adults >= 0", name="ck_booking_item_adults_non_negative"),
        CheckConstraint("children >= 0", name="ck_booking_item_children_non_negative"),
        CheckConstraint("service_end >= service_start", name="ck_booking_item_service_window"),
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="items")
    nights: Mapped[list["BookingItemNight"]] = relationship(
        "BookingItemNight",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="BookingItemNight.service_date",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return (
            f"<BookingItem(id={self.id}, booking_id={self.booking_id}, supplier_id={self.supplier_id}, "
            f"quantity={self.quantity}, state={self.state})>"
        )


class BookingItemNight(Base):
    """Allocation record consumed by one night of a booking item."""

    __tablename__ = "booking_item_nights"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False)
    booking_item_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("booking_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
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

    # Per-unit pricing for this night
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint("booking_item_id", "service_date", name="uq_booking_item_night_date"),
    )

    # Relationships
    item: Mapped["BookingItem"] = relationship("BookingItem", back_populates="nights")

    def __repr__(self) -> str:
        return (
            f"<BookingItemNight(booking_item_id={self.booking_item_id}, service_date={self.service_date}, "
            f"allocation_record_id={self.allocation_record_id})>"
        )


class Passenger(Base):
    """Passenger travelling on a booking."""

    __tablename__ = "passengers"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False)
    booking_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Contact details
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_lead: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dietary: Mapped[str | None] = mapped_column(Text, nullable=True)
    medical: Mapped[str | None] = mapped_column(Text, nullable=True)
    passport: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(full_name) > 0", name="ck_passenger_full_name_not_empty"),
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="passengers")

    def __repr__(self) -> str:
        return f"<Passenger(id={self.id}, booking_id={self.booking_id}, full_name='{self.full_name}')>"
