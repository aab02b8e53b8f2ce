"""Initial allocation schema

Revision ID: 0001
Revises:
Create Date: 2025-09-01 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create suppliers table
    op.create_table('suppliers',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_supplier_org_name')
    )
    op.create_index(op.f('ix_suppliers_org_id'), 'suppliers', ['org_id'], unique=False)

    # Create product_variants table
    op.create_table('product_variants',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('product_type', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_product_variants_org_id'), 'product_variants', ['org_id'], unique=False)

    # Create rate_plans table
    op.create_table('rate_plans',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_variant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('valid_from', sa.Date(), nullable=False),
        sa.Column('valid_to', sa.Date(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('preferred', sa.Boolean(), nullable=False),
        sa.Column('inventory_model', sa.String(length=20), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('base_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('auto_select', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('valid_to >= valid_from', name='ck_rate_plan_validity_window'),
        sa.CheckConstraint('base_amount >= 0', name='ck_rate_plan_base_amount_non_negative'),
        sa.CheckConstraint('length(currency) = 3', name='ck_rate_plan_currency_length'),
        sa.ForeignKeyConstraint(['product_variant_id'], ['product_variants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rate_plans_org_id'), 'rate_plans', ['org_id'], unique=False)
    op.create_index(
        'ix_rate_plans_lookup', 'rate_plans',
        ['org_id', 'product_variant_id', 'supplier_id', 'valid_from', 'valid_to'], unique=False
    )

    # Create inventory_pools table
    op.create_table('inventory_pools',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('booked', sa.Integer(), nullable=False),
        sa.Column('held', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('booked >= 0', name='ck_inventory_pool_booked_non_negative'),
        sa.CheckConstraint('held >= 0', name='ck_inventory_pool_held_non_negative'),
        sa.CheckConstraint('quantity IS NULL OR booked + held <= quantity', name='ck_inventory_pool_within_quantity'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_inventory_pools_org_id'), 'inventory_pools', ['org_id'], unique=False)

    # Create allocation_records table
    op.create_table('allocation_records',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_variant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('inventory_pool_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('service_date', sa.Date(), nullable=False),
        sa.Column('allocation_type', sa.String(length=20), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('booked', sa.Integer(), nullable=False),
        sa.Column('held', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('stop_sell', sa.Boolean(), nullable=False),
        sa.Column('blackout', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('booked >= 0', name='ck_allocation_booked_non_negative'),
        sa.CheckConstraint('held >= 0', name='ck_allocation_held_non_negative'),
        sa.CheckConstraint('quantity IS NULL OR booked + held <= quantity', name='ck_allocation_within_quantity'),
        sa.CheckConstraint('unit_cost >= 0', name='ck_allocation_unit_cost_non_negative'),
        sa.CheckConstraint('length(currency) = 3', name='ck_allocation_currency_length'),
        sa.ForeignKeyConstraint(['product_variant_id'], ['product_variants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['inventory_pool_id'], ['inventory_pools.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'org_id', 'product_variant_id', 'supplier_id', 'service_date',
            name='uq_allocation_variant_supplier_date'
        )
    )
    op.create_index(
        op.f('ix_allocation_records_inventory_pool_id'), 'allocation_records', ['inventory_pool_id'], unique=False
    )
    op.create_index(
        'ix_allocation_records_lookup', 'allocation_records',
        ['org_id', 'product_variant_id', 'service_date'], unique=False
    )

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('channel', sa.String(length=50), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_cost', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_margin', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(reference) > 0', name='ck_booking_reference_not_empty'),
        sa.CheckConstraint('length(currency) = 3', name='ck_booking_currency_length'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'reference', name='uq_booking_org_reference')
    )
    op.create_index(op.f('ix_bookings_org_id'), 'bookings', ['org_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)

    # Create booking_items table
    op.create_table('booking_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_variant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('supplier_name', sa.String(length=255), nullable=False),
        sa.Column('allocation_record_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('inventory_pool_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('service_start', sa.Date(), nullable=False),
        sa.Column('service_end', sa.Date(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('adults', sa.Integer(), nullable=False),
        sa.Column('children', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('margin', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_cost', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_margin', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_booking_item_quantity_positive'),
        sa.CheckConstraint('adults >= 0', name='ck_booking_item_adults_non_negative'),
        sa.CheckConstraint('children >= 0', name='ck_booking_item_children_non_negative'),
        sa.CheckConstraint('service_end >= service_start', name='ck_booking_item_service_window'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_variant_id'], ['product_variants.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['allocation_record_id'], ['allocation_records.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['inventory_pool_id'], ['inventory_pools.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_items_booking_id'), 'booking_items', ['booking_id'], unique=False)
    op.create_index(
        op.f('ix_booking_items_allocation_record_id'), 'booking_items', ['allocation_record_id'], unique=False
    )

    # Create passengers table
    op.create_table('passengers',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('is_lead', sa.Boolean(), nullable=False),
        sa.Column('dietary', sa.Text(), nullable=True),
        sa.Column('medical', sa.Text(), nullable=True),
        sa.Column('passport', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(full_name) > 0', name='ck_passenger_full_name_not_empty'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_passengers_booking_id'), 'passengers', ['booking_id'], unique=False)

    # Create audit_events table
    op.create_table('audit_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(entity_type) > 0', name='ck_audit_event_entity_type_not_empty'),
        sa.CheckConstraint('length(action) > 0', name='ck_audit_event_action_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_events_org_id'), 'audit_events', ['org_id'], unique=False)
    op.create_index(op.f('ix_audit_events_entity_id'), 'audit_events', ['entity_id'], unique=False)
    op.create_index(op.f('ix_audit_events_created_at'), 'audit_events', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('audit_events')
    op.drop_table('passengers')
    op.drop_table('booking_items')
    op.drop_table('bookings')
    op.drop_table('allocation_records')
    op.drop_table('inventory_pools')
    op.drop_table('rate_plans')
    op.drop_table('product_variants')
    op.drop_table('suppliers')
