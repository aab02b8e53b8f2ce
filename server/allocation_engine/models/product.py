"""Product variant model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import String, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class ProductVariant(Base):
    """Sellable variant of a product (room type, tour option, transfer class...)."""

    __tablename__ = "product_variants"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid()
    )

    # Owning organization
    org_id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), nullable=False, index=True)

    # Variant information
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ProductVariant(id={self.id}, org_id={self.org_id}, name='{self.name}')>"
