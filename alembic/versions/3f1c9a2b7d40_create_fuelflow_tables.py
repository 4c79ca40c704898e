"""create_fuelflow_tables

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

fuel_type_enum = postgresql.ENUM('petrol', 'diesel', name='fuel_type_enum', create_type=False)
order_status_enum = postgresql.ENUM(
    'pending', 'ordered', 'paid', 'cancelled', name='order_status_enum', create_type=False
)


def upgrade() -> None:
    """Upgrade schema - Orders, Stripe reconciliation and access-control tables."""
    bind = op.get_bind()
    fuel_type_enum.create(bind, checkfirst=True)
    order_status_enum.create(bind, checkfirst=True)

    # Order ledger
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_email', sa.String(length=320), nullable=False),
        sa.Column('fuel', fuel_type_enum, nullable=False),
        sa.Column('litres', sa.Integer(), nullable=False),
        sa.Column('unit_price_pence', sa.Integer(), nullable=False),
        sa.Column('total_pence', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('address_line1', sa.String(length=200), nullable=True),
        sa.Column('address_line2', sa.String(length=200), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('postcode', sa.String(length=16), nullable=True),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', order_status_enum, nullable=False),
        sa.Column('stripe_session_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_orders_user_email', 'orders', ['user_email'])
    op.create_index('ix_orders_stripe_session_id', 'orders', ['stripe_session_id'])
    op.create_index('ix_orders_stripe_payment_intent_id', 'orders', ['stripe_payment_intent_id'])

    op.create_table(
        'fuel_prices',
        sa.Column('fuel', fuel_type_enum, nullable=False),
        sa.Column('unit_price_pence', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('fuel')
    )

    # Event store: the primary key is the redelivery guard
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=128), nullable=False),
        sa.Column('raw', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('pi_id', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('status', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=True),
        sa.Column('order_id', sa.Uuid(), nullable=True),
        sa.Column('cs_id', sa.String(length=255), nullable=True),
        sa.Column('meta', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payments_pi_id', 'payments', ['pi_id'], unique=True)
    op.create_index('ix_payments_email', 'payments', ['email'])
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])

    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(length=128), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=True),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=64), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_webhook_logs_event_type', 'webhook_logs', ['event_type'])
    op.create_index('ix_webhook_logs_event_id', 'webhook_logs', ['event_id'])

    # Access control
    op.create_table(
        'email_allowlist',
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('approved_by', sa.String(length=320), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('email')
    )

    op.create_table(
        'blocked_users',
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('blocked_by', sa.String(length=320), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('email')
    )
    op.create_index('ix_blocked_users_user_id', 'blocked_users', ['user_id'])

    op.create_table(
        'admins',
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('email')
    )


def downgrade() -> None:
    """Downgrade schema - Drop every FuelFlow table and enum type."""
    op.drop_table('admins')
    op.drop_index('ix_blocked_users_user_id', table_name='blocked_users')
    op.drop_table('blocked_users')
    op.drop_table('email_allowlist')
    op.drop_index('ix_webhook_logs_event_id', table_name='webhook_logs')
    op.drop_index('ix_webhook_logs_event_type', table_name='webhook_logs')
    op.drop_table('webhook_logs')
    op.drop_index('ix_payments_order_id', table_name='payments')
    op.drop_index('ix_payments_email', table_name='payments')
    op.drop_index('ix_payments_pi_id', table_name='payments')
    op.drop_table('payments')
    op.drop_table('webhook_events')
    op.drop_table('fuel_prices')
    op.drop_index('ix_orders_stripe_payment_intent_id', table_name='orders')
    op.drop_index('ix_orders_stripe_session_id', table_name='orders')
    op.drop_index('ix_orders_user_email', table_name='orders')
    op.drop_table('orders')

    bind = op.get_bind()
    order_status_enum.drop(bind, checkfirst=True)
    fuel_type_enum.drop(bind, checkfirst=True)
