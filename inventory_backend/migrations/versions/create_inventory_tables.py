"""create inventory and stock reservation tables

Ledger rows keyed by SKU, reservations keyed by reservation_id with their
line items.

Revision ID: create_inventory_tables
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'create_inventory_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'inventory',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sku', sa.String(50), nullable=False, unique=True),
        sa.Column('product_id', sa.BigInteger(), nullable=True),
        sa.Column('quantity_on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity_reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity_available', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_point', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('reorder_quantity', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('warehouse_id', sa.String(50), nullable=True),
        sa.Column('warehouse_location', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='OUT_OF_STOCK'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('last_restocked_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity_on_hand >= 0', name='ck_inventory_on_hand_non_negative'),
        sa.CheckConstraint('quantity_reserved >= 0', name='ck_inventory_reserved_non_negative'),
        sa.CheckConstraint('quantity_reserved <= quantity_on_hand', name='ck_inventory_reserved_le_on_hand'),
        sa.CheckConstraint('reorder_point >= 0', name='ck_inventory_reorder_point_non_negative'),
    )
    op.create_index('ix_inventory_status', 'inventory', ['status'])
    op.create_index('ix_inventory_warehouse_id', 'inventory', ['warehouse_id'])

    op.create_table(
        'stock_reservations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('reservation_id', sa.String(36), nullable=False, unique=True),
        sa.Column('order_id', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('released_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_stock_reservations_order_id', 'stock_reservations', ['order_id'])
    op.create_index('ix_stock_reservations_status', 'stock_reservations', ['status'])
    op.create_index('ix_stock_reservations_status_expires', 'stock_reservations', ['status', 'expires_at'])

    op.create_table(
        'reservation_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'reservation_pk',
            sa.Integer(),
            sa.ForeignKey('stock_reservations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sku', sa.String(50), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
    )
    op.create_index('ix_reservation_items_reservation_pk', 'reservation_items', ['reservation_pk'])


def downgrade() -> None:
    op.drop_index('ix_reservation_items_reservation_pk', table_name='reservation_items')
    op.drop_table('reservation_items')
    op.drop_index('ix_stock_reservations_status_expires', table_name='stock_reservations')
    op.drop_index('ix_stock_reservations_status', table_name='stock_reservations')
    op.drop_index('ix_stock_reservations_order_id', table_name='stock_reservations')
    op.drop_table('stock_reservations')
    op.drop_index('ix_inventory_warehouse_id', table_name='inventory')
    op.drop_index('ix_inventory_status', table_name='inventory')
    op.drop_table('inventory')
