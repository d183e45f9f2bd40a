"""create orders and payment tables

Revision ID: create_payment_tables
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'create_payment_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_code', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(), nullable=True),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('shipping_fee', sa.Numeric(14, 2), nullable=False),
        sa.Column('final_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('payment_status', sa.String(), nullable=False),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('payment_details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_order_code', 'orders', ['order_code'], unique=True)

    op.create_table(
        'payment_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('order_code', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(), nullable=False),
        sa.Column('request_id', sa.String(length=96), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('client_ip', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id'),
    )
    op.create_index('ix_payment_sessions_order_code', 'payment_sessions', ['order_code'])

    op.create_table(
        'payment_notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider', sa.String(), nullable=False),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('order_code', sa.String(length=64), nullable=True),
        sa.Column('request_id', sa.String(length=96), nullable=True),
        sa.Column('transaction_id', sa.String(), nullable=True),
        sa.Column('response_code', sa.String(), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('outcome', sa.String(), nullable=False),
        sa.Column('raw_payload', sa.JSON(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payment_notifications_order_code', 'payment_notifications', ['order_code'])


def downgrade() -> None:
    op.drop_index('ix_payment_notifications_order_code', table_name='payment_notifications')
    op.drop_table('payment_notifications')
    op.drop_index('ix_payment_sessions_order_code', table_name='payment_sessions')
    op.drop_table('payment_sessions')
    op.drop_index('ix_orders_order_code', table_name='orders')
    op.drop_table('orders')
