"""
Alembic migration: Initial checkout schema.

Creates delivery zone configuration, the catalog rows checkout reads and
decrements, authenticated cart lines, and the order tables: address
snapshots, orders with their payment axis, denormalized order items and the
append-only fulfillment status history.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        'id',
        sa.Uuid(as_uuid=True),
        nullable=False,
        comment='Unique identifier for the record',
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Upgrade database schema to the initial checkout tables.
    """
    # Delivery configuration
    op.create_table(
        'delivery_zones',
        _id_column(),
        sa.Column('zone_number', sa.Integer(), nullable=False),
        sa.Column('zone_name', sa.String(length=100), nullable=False),
        sa.Column('delivery_days_min', sa.Integer(), nullable=False),
        sa.Column('delivery_days_max', sa.Integer(), nullable=False),
        sa.Column('delivery_charge', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_delivery_zones'),
        sa.UniqueConstraint('zone_number', name='uq_delivery_zones_zone_number'),
        sa.CheckConstraint(
            'delivery_days_min >= 0 AND delivery_days_min <= delivery_days_max',
            name='ck_delivery_zones_days_range',
        ),
        sa.CheckConstraint(
            'delivery_charge >= 0',
            name='ck_delivery_zones_charge_non_negative',
        ),
        comment='Shipping-cost and lead-time brackets',
    )

    op.create_table(
        'zone_regions',
        _id_column(),
        sa.Column('delivery_zone_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('state_name', sa.String(length=150), nullable=False),
        sa.Column('district_name', sa.String(length=100), nullable=True),
        sa.Column('region_type', sa.String(length=20), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_zone_regions'),
        sa.ForeignKeyConstraint(
            ['delivery_zone_id'],
            ['delivery_zones.id'],
            name='fk_zone_regions_delivery_zone_id',
            ondelete='CASCADE',
        ),
        comment='State and district mappings onto delivery zones',
    )
    op.create_index('ix_zone_regions_state_name', 'zone_regions', ['state_name'])
    op.create_index('ix_zone_regions_delivery_zone_id', 'zone_regions', ['delivery_zone_id'])

    # Catalog
    op.create_table(
        'products',
        _id_column(),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('price_original', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('price_discounted', sa.Numeric(precision=10, scale=2), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
    )

    op.create_table(
        'product_colors',
        _id_column(),
        sa.Column('product_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('color_code', sa.String(length=20), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_product_colors'),
        sa.ForeignKeyConstraint(
            ['product_id'],
            ['products.id'],
            name='fk_product_colors_product_id',
            ondelete='CASCADE',
        ),
    )

    op.create_table(
        'product_sizes',
        _id_column(),
        sa.Column('product_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('color_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('in_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_product_sizes'),
        sa.ForeignKeyConstraint(
            ['product_id'],
            ['products.id'],
            name='fk_product_sizes_product_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['color_id'],
            ['product_colors.id'],
            name='fk_product_sizes_color_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint(
            'stock_quantity >= 0',
            name='ck_product_sizes_stock_non_negative',
        ),
        comment='Size variants and their live stock',
    )
    op.create_index(
        'ix_product_sizes_product_color',
        'product_sizes',
        ['product_id', 'color_id'],
    )

    # Cart
    op.create_table(
        'cart_items',
        _id_column(),
        sa.Column('customer_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('product_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('color_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('size_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_cart_items'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['color_id'], ['product_colors.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['size_id'], ['product_sizes.id'], ondelete='CASCADE'),
        sa.CheckConstraint('quantity > 0', name='ck_cart_items_quantity_positive'),
        sa.UniqueConstraint('customer_id', 'size_id', name='uq_cart_items_customer_size'),
    )
    op.create_index('ix_cart_items_customer_id', 'cart_items', ['customer_id'])

    # Orders
    op.create_table(
        'addresses',
        _id_column(),
        sa.Column('customer_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('address_line_1', sa.String(length=255), nullable=False),
        sa.Column('address_line_2', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('state', sa.String(length=100), nullable=False),
        sa.Column('postal_code', sa.String(length=10), nullable=False),
        sa.Column('country', sa.String(length=2), nullable=False, server_default='IN'),
        sa.Column('phone_number', sa.String(length=20), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_addresses'),
    )
    op.create_index('ix_addresses_customer_id', 'addresses', ['customer_id'])

    op.create_table(
        'orders',
        _id_column(),
        sa.Column('order_number', sa.String(length=50), nullable=False,
                  comment='Human-readable order number'),
        sa.Column('customer_id', sa.Uuid(as_uuid=True), nullable=False,
                  comment='Customer who placed the order'),
        sa.Column('delivery_address_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('subtotal_amount', sa.Numeric(precision=10, scale=2), nullable=False,
                  comment='Cart subtotal at checkout'),
        sa.Column('delivery_charge', sa.Numeric(precision=10, scale=2), nullable=False,
                  comment='Effective delivery charge'),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False,
                  comment='Total order amount including delivery'),
        sa.Column('payment_status', sa.String(length=30), nullable=False,
                  server_default='pending', comment='Current payment status'),
        sa.Column('payment_method', sa.String(length=50), nullable=False,
                  server_default='stripe'),
        sa.Column('payment_reference', sa.String(length=255), nullable=True,
                  comment='Provider payment reference'),
        sa.Column('delivery_zone_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('delivery_pincode', sa.String(length=6), nullable=False),
        sa.Column('estimated_delivery_days', sa.String(length=20), nullable=True),
        sa.Column('from_stored_cart', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        sa.ForeignKeyConstraint(
            ['delivery_address_id'],
            ['addresses.id'],
            name='fk_orders_delivery_address_id',
            ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['delivery_zone_id'],
            ['delivery_zones.id'],
            name='fk_orders_delivery_zone_id',
            ondelete='SET NULL',
        ),
        sa.CheckConstraint('subtotal_amount >= 0', name='ck_orders_subtotal_non_negative'),
        sa.CheckConstraint('delivery_charge >= 0', name='ck_orders_delivery_charge_non_negative'),
        sa.CheckConstraint(
            'total_amount = subtotal_amount + delivery_charge',
            name='ck_orders_total_consistent',
        ),
    )
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_customer_created', 'orders', ['customer_id', 'created_at'])

    op.create_table(
        'order_items',
        _id_column(),
        sa.Column('order_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('product_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('size_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('color_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('product_title', sa.String(length=255), nullable=False),
        sa.Column('size_name', sa.String(length=50), nullable=False),
        sa.Column('color_name', sa.String(length=100), nullable=False),
        sa.Column('color_code', sa.String(length=20), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_items_order_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint(
            'total_price = unit_price * quantity',
            name='ck_order_items_total_consistent',
        ),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        _id_column(),
        sa.Column('order_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('changed_by', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('delivery_partner', sa.String(length=100), nullable=True),
        sa.Column('shipment_id', sa.String(length=100), nullable=True),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_order_status_history'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_status_history_order_id',
            ondelete='CASCADE',
        ),
        sa.UniqueConstraint(
            'order_id',
            'sequence',
            name='uq_order_status_history_order_sequence',
        ),
        sa.CheckConstraint('sequence > 0', name='ck_order_status_history_sequence'),
        comment='Append-only fulfillment status log',
    )


def downgrade() -> None:
    """
    Downgrade database schema by removing the checkout tables.
    """
    op.drop_table('order_status_history')

    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_customer_created', table_name='orders')
    op.drop_index('ix_orders_payment_status', table_name='orders')
    op.drop_index('ix_orders_customer_id', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_addresses_customer_id', table_name='addresses')
    op.drop_table('addresses')

    op.drop_index('ix_cart_items_customer_id', table_name='cart_items')
    op.drop_table('cart_items')

    op.drop_index('ix_product_sizes_product_color', table_name='product_sizes')
    op.drop_table('product_sizes')
    op.drop_table('product_colors')
    op.drop_table('products')

    op.drop_index('ix_zone_regions_delivery_zone_id', table_name='zone_regions')
    op.drop_index('ix_zone_regions_state_name', table_name='zone_regions')
    op.drop_table('zone_regions')
    op.drop_table('delivery_zones')
