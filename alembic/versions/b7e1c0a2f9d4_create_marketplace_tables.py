"""create_marketplace_tables

Revision ID: b7e1c0a2f9d4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'b7e1c0a2f9d4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

offer_status = sa.Enum(
    'pending', 'countered', 'accepted', 'rejected', 'expired',
    name='marketplace_offer_status_enum',
)
offer_party = sa.Enum('buyer', 'seller', name='marketplace_offer_party_enum')
order_status = sa.Enum(
    'awaiting_wire', 'ordered', 'shipped', 'out_for_delivery', 'delivered', 'cancelled',
    name='marketplace_order_status_enum',
)
shipping_choice = sa.Enum('buyer', 'seller_free', name='marketplace_shipping_choice_enum')
notification_type = sa.Enum(
    'offer', 'order', 'system', name='marketplace_notification_type_enum'
)


def upgrade() -> None:
    """Upgrade schema - Add marketplace tables."""

    # Create products table
    op.create_table(
        'marketplace_products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('condition', sa.String(length=50), nullable=True),
        sa.Column('brand', sa.String(length=100), nullable=True),
        sa.Column('retail_comparison_url', sa.String(length=500), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_units', sa.Integer(), nullable=False),
        sa.Column('available_units', sa.Integer(), nullable=False),
        sa.Column('min_order_quantity', sa.Integer(), server_default='1', nullable=False),
        sa.Column('order_multiple', sa.Integer(), server_default='1', nullable=False),
        sa.Column('variations', JSONType, nullable=True),
        sa.Column('variation_stocks', JSONType, nullable=True),
        sa.Column('variation_prices', JSONType, nullable=True),
        sa.Column('images', JSONType, nullable=True),
        sa.Column('fob_location', sa.String(length=255), nullable=True),
        sa.Column('ships_free', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('shipping_fee', sa.Numeric(12, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('available_units >= 0', name='product_available_non_negative'),
        sa.CheckConstraint('min_order_quantity >= 1', name='product_moq_positive'),
        sa.CheckConstraint('order_multiple >= 1', name='product_multiple_positive'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_marketplace_products_seller_id', 'marketplace_products', ['seller_id'])
    op.create_index('ix_marketplace_products_category', 'marketplace_products', ['category'])

    # Create offers table
    op.create_table(
        'marketplace_offers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('selected_variations', JSONType, nullable=True),
        sa.Column('status', offer_status, server_default='pending', nullable=False),
        sa.Column('countered_by', offer_party, nullable=True),
        sa.Column('counter_rounds', sa.Integer(), server_default='0', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['marketplace_products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_marketplace_offers_buyer_id', 'marketplace_offers', ['buyer_id'])
    op.create_index('ix_marketplace_offers_seller_id', 'marketplace_offers', ['seller_id'])
    op.create_index('ix_marketplace_offers_buyer_status', 'marketplace_offers', ['buyer_id', 'status'])
    op.create_index('ix_marketplace_offers_seller_status', 'marketplace_offers', ['seller_id', 'status'])

    # Create cart sessions table
    op.create_table(
        'marketplace_cart_sessions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_key', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=True),
        sa.Column('items', JSONType, nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_key')
    )

    # Create orders table
    op.create_table(
        'marketplace_orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=20), nullable=True),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('status', order_status, server_default='ordered', nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=True),
        sa.Column('payment_details', JSONType, nullable=True),
        sa.Column('shipping_choice', shipping_choice, server_default='buyer', nullable=False),
        sa.Column('shipping_details', JSONType, nullable=True),
        sa.Column('shipping_package', JSONType, nullable=True),
        sa.Column('shipping_label', sa.String(length=500), nullable=True),
        sa.Column('tracking_number', sa.String(length=100), nullable=True),
        sa.Column('buyer_charged', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('seller_paid', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('wire_reminder_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_marketplace_orders_code', 'marketplace_orders', ['code'], unique=True)
    op.create_index('ix_marketplace_orders_buyer_id', 'marketplace_orders', ['buyer_id'])
    op.create_index('ix_marketplace_orders_seller_id', 'marketplace_orders', ['seller_id'])
    op.create_index('ix_marketplace_orders_seller_status', 'marketplace_orders', ['seller_id', 'status'])

    # Create order items table
    op.create_table(
        'marketplace_order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('offer_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('variation_key', sa.String(length=500), nullable=False),
        sa.Column('selected_variations', JSONType, nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint('quantity > 0', name='order_item_positive_quantity'),
        sa.ForeignKeyConstraint(['order_id'], ['marketplace_orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['marketplace_products.id']),
        sa.ForeignKeyConstraint(['offer_id'], ['marketplace_offers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    # Create settings and notifications tables
    op.create_table(
        'marketplace_site_settings',
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )
    op.create_table(
        'marketplace_notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', notification_type, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('link', sa.String(length=500), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_marketplace_notifications_user_read',
        'marketplace_notifications',
        ['user_id', 'is_read'],
    )


def downgrade() -> None:
    """Downgrade schema - Drop marketplace tables."""
    op.drop_index('ix_marketplace_notifications_user_read', table_name='marketplace_notifications')
    op.drop_table('marketplace_notifications')
    op.drop_table('marketplace_site_settings')
    op.drop_table('marketplace_order_items')
    op.drop_index('ix_marketplace_orders_seller_status', table_name='marketplace_orders')
    op.drop_index('ix_marketplace_orders_seller_id', table_name='marketplace_orders')
    op.drop_index('ix_marketplace_orders_buyer_id', table_name='marketplace_orders')
    op.drop_index('ix_marketplace_orders_code', table_name='marketplace_orders')
    op.drop_table('marketplace_orders')
    op.drop_table('marketplace_cart_sessions')
    op.drop_index('ix_marketplace_offers_seller_status', table_name='marketplace_offers')
    op.drop_index('ix_marketplace_offers_buyer_status', table_name='marketplace_offers')
    op.drop_index('ix_marketplace_offers_seller_id', table_name='marketplace_offers')
    op.drop_index('ix_marketplace_offers_buyer_id', table_name='marketplace_offers')
    op.drop_table('marketplace_offers')
    op.drop_index('ix_marketplace_products_category', table_name='marketplace_products')
    op.drop_index('ix_marketplace_products_seller_id', table_name='marketplace_products')
    op.drop_table('marketplace_products')

    for enum_type in (
        notification_type,
        shipping_choice,
        order_status,
        offer_party,
        offer_status,
    ):
        enum_type.drop(op.get_bind(), checkfirst=True)
