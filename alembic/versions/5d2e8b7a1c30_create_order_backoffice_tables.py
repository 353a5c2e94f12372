"""create_order_backoffice_tables

Revision ID: 5d2e8b7a1c30
Revises:
Create Date: 2026-10-19 09:12:44.218530

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = '5d2e8b7a1c30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'stores',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('platform', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('external_shop_id', sa.Text(), nullable=True),
        sa.Column('credentials', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('last_sync_timestamp', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('platform', 'name', name='uq_stores_platform_name'),
    )

    op.create_table(
        'product_configurations',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sku', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('personalization_type', sa.Text(), nullable=False),
        sa.Column('package_weight_oz', sa.Float(), nullable=True),
        sa.Column('package_length_in', sa.Float(), nullable=True),
        sa.Column('package_width_in', sa.Float(), nullable=True),
        sa.Column('package_height_in', sa.Float(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
    )

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('platform', sa.Text(), nullable=False),
        sa.Column('external_order_id', sa.Text(), nullable=False),
        sa.Column('external_receipt_id', sa.Text(), nullable=True),
        sa.Column('order_number', sa.Text(), nullable=True),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('customer_name', sa.Text(), nullable=True),
        sa.Column('customer_email', sa.Text(), nullable=True),
        sa.Column('shipping_address_line1', sa.Text(), nullable=True),
        sa.Column('shipping_address_line2', sa.Text(), nullable=True),
        sa.Column('shipping_city', sa.Text(), nullable=True),
        sa.Column('shipping_state', sa.Text(), nullable=True),
        sa.Column('shipping_zip', sa.Text(), nullable=True),
        sa.Column('shipping_country', sa.Text(), nullable=True),
        sa.Column('product_sku', sa.Text(), nullable=True),
        sa.Column('product_name', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('raw_external_snapshot', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('tracking_number', sa.Text(), nullable=True),
        sa.Column('carrier', sa.Text(), nullable=True),
        sa.Column('label_url', sa.Text(), nullable=True),
        sa.Column('design_files', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('needs_design_revision', sa.Boolean(), nullable=True),
        sa.Column('design_revision_notes', sa.Text(), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        sa.Column('review_reason', sa.Text(), nullable=True),
        sa.Column('enrichment_email', sa.Text(), nullable=True),
        sa.Column('enrichment_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('production_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('labels_generated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('loaded_for_shipment_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('platform', 'external_order_id', name='uq_orders_platform_external_id'),
    )
    op.create_index('ix_orders_product_sku', 'orders', ['product_sku'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_tracking_number', 'orders', ['tracking_number'])

    op.create_table(
        'order_status_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('from_status', sa.Text(), nullable=True),
        sa.Column('to_status', sa.Text(), nullable=False),
        sa.Column('source', sa.Text(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    op.create_table(
        'sync_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('sync_started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sync_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('orders_fetched', sa.Integer(), nullable=True),
        sa.Column('orders_imported', sa.Integer(), nullable=True),
        sa.Column('orders_skipped', sa.Integer(), nullable=True),
        sa.Column('orders_inserted', sa.Integer(), nullable=True),
        sa.Column('orders_updated', sa.Integer(), nullable=True),
        sa.Column('error_count', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sync_logs_store_id', 'sync_logs', ['store_id'])


def downgrade() -> None:
    op.drop_index('ix_sync_logs_store_id', table_name='sync_logs')
    op.drop_table('sync_logs')
    op.drop_index('ix_order_status_history_order_id', table_name='order_status_history')
    op.drop_table('order_status_history')
    op.drop_index('ix_orders_tracking_number', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_product_sku', table_name='orders')
    op.drop_table('orders')
    op.drop_table('product_configurations')
    op.drop_table('stores')
