"""baseline_schema

Revision ID: a1f0c2d3e4b5
Revises: 
Create Date: 2026-10-17 10:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f0c2d3e4b5'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables for the GateFlow payment service (baseline schema)."""

    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('auto_grant_duration_days', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_products_slug'), 'products', ['slug'], unique=True)

    op.create_table(
        'order_bumps',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('main_product_id', sa.String(length=36), nullable=False),
        sa.Column('bump_product_id', sa.String(length=36), nullable=False),
        sa.Column('bump_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('bump_title', sa.String(length=255), nullable=False),
        sa.Column('bump_description', sa.String(length=1000), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('access_duration_days', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('main_product_id != bump_product_id', name='no_self_bump'),
        sa.ForeignKeyConstraint(['main_product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['bump_product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('main_product_id', 'bump_product_id', name='unique_bump_pair')
    )
    op.create_index(op.f('ix_order_bumps_main_product_id'), 'order_bumps', ['main_product_id'], unique=False)

    op.create_table(
        'oto_offers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('source_product_id', sa.String(length=36), nullable=False),
        sa.Column('oto_product_id', sa.String(length=36), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('discount_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['source_product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['oto_product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_product_id')
    )

    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('session_id', sa.String(length=255), nullable=False),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('refund_id', sa.String(length=255), nullable=True),
        sa.Column('refunded_amount', sa.Integer(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('dispute', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payment_transactions_session_id'), 'payment_transactions', ['session_id'], unique=True)
    op.create_index(op.f('ix_payment_transactions_stripe_payment_intent_id'), 'payment_transactions',
                    ['stripe_payment_intent_id'], unique=True)
    op.create_index(op.f('ix_payment_transactions_product_id'), 'payment_transactions', ['product_id'], unique=False)
    op.create_index(op.f('ix_payment_transactions_customer_email'), 'payment_transactions',
                    ['customer_email'], unique=False)
    op.create_index(op.f('ix_payment_transactions_user_id'), 'payment_transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_payment_transactions_status'), 'payment_transactions', ['status'], unique=False)

    op.create_table(
        'coupons',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('discount_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('allowed_emails', sa.JSON(), nullable=False),
        sa.Column('allowed_product_ids', sa.JSON(), nullable=False),
        sa.Column('exclude_order_bumps', sa.Boolean(), nullable=False),
        sa.Column('usage_limit_global', sa.Integer(), nullable=True),
        sa.Column('usage_limit_per_user', sa.Integer(), nullable=True),
        sa.Column('current_usage_count', sa.Integer(), nullable=False),
        sa.Column('starts_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_oto_coupon', sa.Boolean(), nullable=False),
        sa.Column('oto_source_transaction_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('discount_value > 0', name='coupon_positive_discount'),
        sa.CheckConstraint("discount_type IN ('percentage', 'fixed')", name='coupon_discount_type'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_coupons_code'), 'coupons', ['code'], unique=True)
    op.create_index(op.f('ix_coupons_oto_source_transaction_id'), 'coupons',
                    ['oto_source_transaction_id'], unique=False)

    op.create_table(
        'coupon_redemptions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('coupon_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('transaction_id', sa.String(length=36), nullable=True),
        sa.Column('redeemed_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['transaction_id'], ['payment_transactions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_coupon_redemptions_coupon_id'), 'coupon_redemptions', ['coupon_id'], unique=False)
    op.create_index(op.f('ix_coupon_redemptions_customer_email'), 'coupon_redemptions',
                    ['customer_email'], unique=False)

    op.create_table(
        'user_product_access',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('access_granted_at', sa.DateTime(), nullable=False),
        sa.Column('access_expires_at', sa.DateTime(), nullable=True),
        sa.Column('access_duration_days', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'product_id', name='unique_user_product_access')
    )
    op.create_index(op.f('ix_user_product_access_user_id'), 'user_product_access', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_product_access_product_id'), 'user_product_access', ['product_id'], unique=False)

    op.create_table(
        'guest_purchases',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('session_id', sa.String(length=255), nullable=False),
        sa.Column('transaction_amount', sa.Integer(), nullable=False),
        sa.Column('claimed_by_user_id', sa.String(length=36), nullable=True),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['claimed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id')
    )
    op.create_index(op.f('ix_guest_purchases_customer_email'), 'guest_purchases', ['customer_email'], unique=False)

    op.create_table(
        'processed_webhook_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('event_key', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('event_type', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('message', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_key')
    )

    op.create_table(
        'webhook_endpoints',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('url', sa.String(length=2048), nullable=False),
        sa.Column('secret', sa.String(length=255), nullable=False),
        sa.Column('events', sa.JSON(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('endpoint_id', sa.String(length=36), nullable=True),
        sa.Column('event_type', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('http_status', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('error_message', sa.String(length=1000), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['endpoint_id'], ['webhook_endpoints.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_webhook_logs_endpoint_id'), 'webhook_logs', ['endpoint_id'], unique=False)
    op.create_index(op.f('ix_webhook_logs_status'), 'webhook_logs', ['status'], unique=False)

    op.create_table(
        'integrations_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('facebook_pixel_id', sa.String(length=64), nullable=True),
        sa.Column('facebook_capi_token', sa.String(length=512), nullable=True),
        sa.Column('facebook_test_event_code', sa.String(length=64), nullable=True),
        sa.Column('fb_capi_enabled', sa.Boolean(), nullable=False),
        sa.Column('send_conversions_without_consent', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    """Drop all tables (reverse order)."""
    op.drop_table('integrations_config')
    op.drop_index(op.f('ix_webhook_logs_status'), table_name='webhook_logs')
    op.drop_index(op.f('ix_webhook_logs_endpoint_id'), table_name='webhook_logs')
    op.drop_table('webhook_logs')
    op.drop_table('webhook_endpoints')
    op.drop_table('processed_webhook_events')
    op.drop_index(op.f('ix_guest_purchases_customer_email'), table_name='guest_purchases')
    op.drop_table('guest_purchases')
    op.drop_index(op.f('ix_user_product_access_product_id'), table_name='user_product_access')
    op.drop_index(op.f('ix_user_product_access_user_id'), table_name='user_product_access')
    op.drop_table('user_product_access')
    op.drop_index(op.f('ix_coupon_redemptions_customer_email'), table_name='coupon_redemptions')
    op.drop_index(op.f('ix_coupon_redemptions_coupon_id'), table_name='coupon_redemptions')
    op.drop_table('coupon_redemptions')
    op.drop_index(op.f('ix_coupons_oto_source_transaction_id'), table_name='coupons')
    op.drop_index(op.f('ix_coupons_code'), table_name='coupons')
    op.drop_table('coupons')
    op.drop_index(op.f('ix_payment_transactions_status'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_user_id'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_customer_email'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_product_id'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_stripe_payment_intent_id'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_session_id'), table_name='payment_transactions')
    op.drop_table('payment_transactions')
    op.drop_table('oto_offers')
    op.drop_index(op.f('ix_order_bumps_main_product_id'), table_name='order_bumps')
    op.drop_table('order_bumps')
    op.drop_index(op.f('ix_products_slug'), table_name='products')
    op.drop_table('products')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
