"""Rate plan model definition."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .supplier import Supplier


class InventoryModel(str, Enum):
    """How a supplier's inventory behind a rate plan is contracted."""
    COMMITTED = "committed"
    FREESALE = "freesale"
    ON_REQUEST = "on_request"


class RatePlan(Base):
    """
    Pricing definition for a product variant.

    A plan without a supplier is a master (selling) rate; a plan with a
    supplier is that supplier's cost rate.
    """

    __tablename__ = "rate_plans"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    # Scope
    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False, index=True)
    product_variant_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False
    )
    supplier_id: Mapped[UUID | None] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=True
    )

    # Plan details
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_to: Mapped[date] = mapped_column(Date, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    preferred: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    inventory_model: Mapped[InventoryModel] = mapped_column(
        String(20),
        nullable=False,
        default=InventoryModel.COMMITTED
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Selling price for master plans, unit cost for supplier plans
    base_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # None or True: eligible for automatic supplier selection; False: opted out
    auto_select: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("valid_to >= valid_from", name="ck_rate_plan_validity_window"),
        CheckConstraint("base_amount >= 0", name="ck_rate_plan_base_amount_non_negative"),
        CheckConstraint("length(currency) = 3", name="ck_rate_plan_currency_length"),
        Index("ix_rate_plans_lookup", "org_id", "product_variant_id", "supplier_id", "valid_from", "valid_to"),
    )

    # Relationships
    supplier: Mapped["Supplier | None"] = relationship("Supplier")

    @property
    def is_master(self) -> bool:
        """Return True for selling-rate plans."""
        return self.supplier_id is None

    def __repr__(self) -> str:
        return (
            f"<RatePlan(id={self.id}, variant={self.product_variant_id}, supplier={self.supplier_id}, "
            f"priority={self.priority}, valid={self.valid_from}..{self.valid_to})>"
        )
