"""Per-night booking allocations and inventory holds

Revision ID: 0002
Revises: 0001
Create Date: 2025-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: str | None = '0001'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create booking_item_nights table
    op.create_table('booking_item_nights',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('booking_item_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('service_date', sa.Date(), nullable=False),
        sa.Column('allocation_record_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('inventory_pool_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('unit_cost', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['booking_item_id'], ['booking_items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['allocation_record_id'], ['allocation_records.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['inventory_pool_id'], ['inventory_pools.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_item_id', 'service_date', name='uq_booking_item_night_date')
    )
    op.create_index(
        op.f('ix_booking_item_nights_booking_item_id'), 'booking_item_nights', ['booking_item_id'], unique=False
    )
    op.create_index(
        op.f('ix_booking_item_nights_allocation_record_id'), 'booking_item_nights', ['allocation_record_id'],
        unique=False
    )

    # Existing items were single-day: their one night is the item's own record
    op.execute(
        """
        INSERT INTO booking_item_nights
            (id, org_id, booking_item_id, service_date, allocation_record_id, inventory_pool_id, unit_cost, unit_price)
        SELECT gen_random_uuid(), org_id, id, service_start, allocation_record_id, inventory_pool_id,
               unit_cost, unit_price
        FROM booking_items
        """
    )

    # Create holds table
    op.create_table('holds',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('channel', sa.String(length=50), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_holds_org_id'), 'holds', ['org_id'], unique=False)
    op.create_index(op.f('ix_holds_status'), 'holds', ['status'], unique=False)
    op.create_index(op.f('ix_holds_expires_at'), 'holds', ['expires_at'], unique=False)

    # Create hold_allocations table
    op.create_table('hold_allocations',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hold_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('item_index', sa.Integer(), nullable=False),
        sa.Column('service_date', sa.Date(), nullable=False),
        sa.Column('product_variant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('supplier_name', sa.String(length=255), nullable=False),
        sa.Column('allocation_record_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('inventory_pool_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('selling_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_hold_allocation_quantity_positive'),
        sa.ForeignKeyConstraint(['hold_id'], ['holds.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_variant_id'], ['product_variants.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['allocation_record_id'], ['allocation_records.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['inventory_pool_id'], ['inventory_pools.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('hold_id', 'item_index', 'service_date', name='uq_hold_allocation_item_night')
    )
    op.create_index(op.f('ix_hold_allocations_hold_id'), 'hold_allocations', ['hold_id'], unique=False)
    op.create_index(
        op.f('ix_hold_allocations_allocation_record_id'), 'hold_allocations', ['allocation_record_id'], unique=False
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('hold_allocations')
    op.drop_table('holds')
    op.drop_table('booking_item_nights')
