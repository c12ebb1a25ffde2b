"""Initial shipment tracking schema

Revision ID: 001
Revises:
Create Date: 2026-01-12 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Canonical orders
    op.create_table('orders',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('order_id', sa.String(length=64), nullable=False),
    sa.Column('user_id', sa.String(length=64), nullable=True),
    sa.Column('waybill', sa.String(length=64), nullable=True),
    sa.Column('reference_id', sa.String(length=100), nullable=True),
    sa.Column('pickup_request_id', sa.String(length=100), nullable=True),
    sa.Column('pickup_request_date', sa.DateTime(), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=False, server_default='new'),
    sa.Column('carrier_status', sa.String(length=255), nullable=True),
    sa.Column('last_status_update', sa.DateTime(), nullable=True),
    sa.Column('delivered_date', sa.DateTime(), nullable=True),
    sa.Column('cancelled_date', sa.DateTime(), nullable=True),
    sa.Column('rto_date', sa.DateTime(), nullable=True),
    sa.Column('epod_url', sa.String(length=500), nullable=True),
    sa.Column('epod_date', sa.DateTime(), nullable=True),
    sa.Column('weight_photo_url', sa.String(length=500), nullable=True),
    sa.Column('qc_image_url', sa.String(length=500), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_orders_id'), 'orders', ['id'], unique=False)
    op.create_index(op.f('ix_orders_order_id'), 'orders', ['order_id'], unique=True)
    op.create_index(op.f('ix_orders_user_id'), 'orders', ['user_id'], unique=False)
    op.create_index(op.f('ix_orders_waybill'), 'orders', ['waybill'], unique=True)
    op.create_index(op.f('ix_orders_reference_id'), 'orders', ['reference_id'], unique=False)
    op.create_index(op.f('ix_orders_status'), 'orders', ['status'], unique=False)

    op.create_table('order_status_history',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('order_id', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=False),
    sa.Column('previous_status', sa.String(length=50), nullable=True),
    sa.Column('source', sa.String(length=50), nullable=False, server_default='manual'),
    sa.Column('remarks', sa.Text(), nullable=True),
    sa.Column('location', sa.String(length=255), nullable=True),
    sa.Column('is_fallback', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_order_status_history_id'), 'order_status_history', ['id'], unique=False)
    op.create_index(op.f('ix_order_status_history_order_id'), 'order_status_history', ['order_id'], unique=False)
    op.create_index(op.f('ix_order_status_history_created_at'), 'order_status_history', ['created_at'], unique=False)

    # Shipment tracking records
    op.create_table('tracking_orders',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('order_id', sa.String(length=64), nullable=False),
    sa.Column('user_id', sa.String(length=64), nullable=True),
    sa.Column('waybill', sa.String(length=64), nullable=False),
    sa.Column('reference_id', sa.String(length=100), nullable=True),
    sa.Column('pickup_request_id', sa.String(length=100), nullable=True),
    sa.Column('pickup_request_date', sa.DateTime(), nullable=True),
    sa.Column('pickup_request_status', sa.String(length=50), nullable=True),
    sa.Column('current_status', sa.String(length=50), nullable=False, server_default='pickups_manifests'),
    sa.Column('delhivery_status', sa.String(length=100), nullable=True),
    sa.Column('api_status', sa.String(length=255), nullable=True),
    sa.Column('is_tracking_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('is_delivered', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('tracking_count', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('last_tracked_at', sa.DateTime(), nullable=True),
    sa.Column('last_tracking_response', sa.JSON(), nullable=True),
    sa.Column('delivered_at', sa.DateTime(), nullable=True),
    sa.Column('delivered_by', sa.String(length=255), nullable=True),
    sa.Column('delivery_location', sa.String(length=255), nullable=True),
    sa.Column('cancelled_at', sa.DateTime(), nullable=True),
    sa.Column('cancellation_reason', sa.Text(), nullable=True),
    sa.Column('rto_at', sa.DateTime(), nullable=True),
    sa.Column('rto_reason', sa.Text(), nullable=True),
    sa.Column('ndr_attempts', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('last_ndr_date', sa.DateTime(), nullable=True),
    sa.Column('ndr_reason', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tracking_orders_id'), 'tracking_orders', ['id'], unique=False)
    op.create_index(op.f('ix_tracking_orders_order_id'), 'tracking_orders', ['order_id'], unique=False)
    op.create_index(op.f('ix_tracking_orders_user_id'), 'tracking_orders', ['user_id'], unique=False)
    op.create_index(op.f('ix_tracking_orders_waybill'), 'tracking_orders', ['waybill'], unique=True)
    op.create_index(op.f('ix_tracking_orders_pickup_request_id'), 'tracking_orders', ['pickup_request_id'], unique=False)
    op.create_index(op.f('ix_tracking_orders_current_status'), 'tracking_orders', ['current_status'], unique=False)
    op.create_index(op.f('ix_tracking_orders_is_tracking_active'), 'tracking_orders', ['is_tracking_active'], unique=False)
    op.create_index(op.f('ix_tracking_orders_is_delivered'), 'tracking_orders', ['is_delivered'], unique=False)
    op.create_index(op.f('ix_tracking_orders_last_tracked_at'), 'tracking_orders', ['last_tracked_at'], unique=False)

    op.create_table('tracking_status_history',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('tracking_order_id', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=255), nullable=True),
    sa.Column('status_type', sa.String(length=100), nullable=True),
    sa.Column('status_date_time', sa.DateTime(), nullable=True),
    sa.Column('location', sa.String(length=255), nullable=True),
    sa.Column('instructions', sa.Text(), nullable=True),
    sa.Column('nsl_code', sa.String(length=50), nullable=True),
    sa.Column('sort_code', sa.String(length=100), nullable=True),
    sa.Column('mapped_status', sa.String(length=50), nullable=True),
    sa.Column('is_fallback', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('applied', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('source', sa.String(length=50), nullable=False, server_default='automated_tracking'),
    sa.Column('raw_data', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['tracking_order_id'], ['tracking_orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tracking_status_history_id'), 'tracking_status_history', ['id'], unique=False)
    op.create_index(op.f('ix_tracking_status_history_tracking_order_id'), 'tracking_status_history', ['tracking_order_id'], unique=False)
    op.create_index(op.f('ix_tracking_status_history_created_at'), 'tracking_status_history', ['created_at'], unique=False)

    op.create_table('tracking_failures',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('tracking_order_id', sa.Integer(), nullable=False),
    sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('error', sa.Text(), nullable=False),
    sa.Column('error_type', sa.String(length=50), nullable=False, server_default='SYSTEM_ERROR'),
    sa.Column('status_code', sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(['tracking_order_id'], ['tracking_orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tracking_failures_id'), 'tracking_failures', ['id'], unique=False)
    op.create_index(op.f('ix_tracking_failures_tracking_order_id'), 'tracking_failures', ['tracking_order_id'], unique=False)

    # Webhook events and documents
    op.create_table('shipment_tracking_events',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('waybill', sa.String(length=64), nullable=False),
    sa.Column('reference_no', sa.String(length=100), nullable=True),
    sa.Column('status', sa.String(length=255), nullable=False),
    sa.Column('status_type', sa.String(length=100), nullable=True),
    sa.Column('status_date_time', sa.DateTime(), nullable=False),
    sa.Column('status_time_key', sa.String(length=64), nullable=False),
    sa.Column('status_location', sa.String(length=255), nullable=True),
    sa.Column('instructions', sa.Text(), nullable=True),
    sa.Column('mapped_status', sa.String(length=50), nullable=True),
    sa.Column('nsl_code', sa.String(length=50), nullable=True),
    sa.Column('sort_code', sa.String(length=100), nullable=True),
    sa.Column('pickup_date', sa.DateTime(), nullable=True),
    sa.Column('raw_payload', sa.JSON(), nullable=True),
    sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('processed_at', sa.DateTime(), nullable=True),
    sa.Column('order_ref', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['order_ref'], ['orders.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('waybill', 'status', 'status_time_key', name='uq_tracking_event_dedup')
    )
    op.create_index(op.f('ix_shipment_tracking_events_id'), 'shipment_tracking_events', ['id'], unique=False)
    op.create_index(op.f('ix_shipment_tracking_events_waybill'), 'shipment_tracking_events', ['waybill'], unique=False)
    op.create_index(op.f('ix_shipment_tracking_events_reference_no'), 'shipment_tracking_events', ['reference_no'], unique=False)
    op.create_index(op.f('ix_shipment_tracking_events_status_date_time'), 'shipment_tracking_events', ['status_date_time'], unique=False)
    op.create_index(op.f('ix_shipment_tracking_events_order_ref'), 'shipment_tracking_events', ['order_ref'], unique=False)

    op.create_table('shipment_documents',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('waybill', sa.String(length=64), nullable=False),
    sa.Column('document_type', sa.String(length=50), nullable=False),
    sa.Column('image_url', sa.String(length=500), nullable=False),
    sa.Column('file_size', sa.Integer(), nullable=True),
    sa.Column('mime_type', sa.String(length=100), nullable=True),
    sa.Column('order_ref', sa.Integer(), nullable=True),
    sa.Column('carrier_order_id', sa.String(length=100), nullable=True),
    sa.Column('return_id', sa.String(length=100), nullable=True),
    sa.Column('doc_reference', sa.String(length=255), nullable=True),
    sa.Column('metadata_json', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['order_ref'], ['orders.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('waybill', 'document_type', 'image_url', name='uq_shipment_document_dedup')
    )
    op.create_index(op.f('ix_shipment_documents_id'), 'shipment_documents', ['id'], unique=False)
    op.create_index(op.f('ix_shipment_documents_waybill'), 'shipment_documents', ['waybill'], unique=False)
    op.create_index(op.f('ix_shipment_documents_document_type'), 'shipment_documents', ['document_type'], unique=False)
    op.create_index(op.f('ix_shipment_documents_order_ref'), 'shipment_documents', ['order_ref'], unique=False)

    # Rate card overrides
    op.create_table('rate_cards',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('tier_key', sa.String(length=100), nullable=False),
    sa.Column('user_category', sa.String(length=100), nullable=False),
    sa.Column('carrier', sa.String(length=50), nullable=False, server_default='DELHIVERY'),
    sa.Column('forward_charges', sa.JSON(), nullable=False),
    sa.Column('rto_charges', sa.JSON(), nullable=False),
    sa.Column('cod_percentage', sa.Numeric(precision=6, scale=3), nullable=False),
    sa.Column('cod_minimum_amount', sa.Numeric(precision=10, scale=2), nullable=False),
    sa.Column('cod_gst_additional', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('zone_definitions', sa.JSON(), nullable=True),
    sa.Column('terms_and_conditions', sa.JSON(), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rate_cards_id'), 'rate_cards', ['id'], unique=False)
    op.create_index(op.f('ix_rate_cards_tier_key'), 'rate_cards', ['tier_key'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('rate_cards')
    op.drop_table('shipment_documents')
    op.drop_table('shipment_tracking_events')
    op.drop_table('tracking_failures')
    op.drop_table('tracking_status_history')
    op.drop_table('tracking_orders')
    op.drop_table('order_status_history')
    op.drop_table('orders')
