"""create_checkout_tables

Revision ID: 3c5e1a7b9d24
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c5e1a7b9d24'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=150), nullable=False, comment='用户名'),
        sa.Column('email', sa.String(length=254), nullable=False, comment='邮箱'),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='user', comment='角色: user/admin'),
        sa.Column('address', sa.String(length=255), nullable=True, comment='默认配送地址'),
        sa.Column('contact', sa.String(length=50), nullable=True, comment='联系电话'),
        sa.Column('free_delivery', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否免配送费'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, comment='商品名'),
        sa.Column('description', sa.Text(), nullable=True, comment='描述'),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False, comment='原价'),
        sa.Column('discount_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0', comment='折扣百分比 0-100'),
        sa.Column('offer_message', sa.String(length=255), nullable=True, comment='促销文案'),
        sa.Column('image', sa.String(length=255), nullable=True, comment='图片路径'),
        sa.Column('category', sa.String(length=100), nullable=False, server_default='General', comment='分类'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
    )
    op.create_index('ix_products_id', 'products', ['id'])

    op.create_table(
        'cart',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='用户ID'),
        sa.Column('product_id', sa.Integer(), nullable=False, comment='商品ID'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1', comment='数量'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_cart_user_id_users', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_cart_product_id_products', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_cart'),
        sa.UniqueConstraint('user_id', 'product_id', name='uq_cart_user_product'),
        sa.CheckConstraint('quantity >= 1', name='ck_cart_quantity_positive'),
    )
    op.create_index('ix_cart_id', 'cart', ['id'])
    op.create_index('ix_cart_user_id', 'cart', ['user_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='用户ID'),
        sa.Column('total', sa.Numeric(precision=10, scale=2), nullable=False, comment='订单总额（含配送费）'),
        sa.Column('delivery_method', sa.String(length=20), nullable=False, server_default='pickup', comment='pickup/delivery'),
        sa.Column('delivery_address', sa.String(length=255), nullable=True, comment='配送地址'),
        sa.Column('delivery_fee', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0', comment='配送费'),
        sa.Column('payment_method', sa.String(length=50), nullable=True, comment='支付方式'),
        sa.Column('payment_status', sa.String(length=30), nullable=False, server_default='unpaid', comment='支付状态: unpaid/paid/refunded/partially_refunded'),
        sa.Column('payment_reference', sa.String(length=255), nullable=True, comment='渠道扣款ID'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False, comment='下单时间'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_orders_user_id_users', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.CheckConstraint('total >= 0', name='ck_orders_total_non_negative'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('product_id', sa.Integer(), nullable=True, comment='商品ID'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='数量'),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False, comment='成交单价'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_order_items_order_id_orders', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_order_items_product_id_products', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.CheckConstraint('quantity >= 1', name='ck_order_items_quantity_positive'),
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'])
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    # 支付台账只追加
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('method', sa.String(length=50), nullable=False, comment='支付方式/渠道: paypal/manual'),
        sa.Column('status', sa.String(length=30), nullable=False, comment='paid/refunded/partially_refunded'),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False, comment='金额'),
        sa.Column('provider_reference', sa.String(length=255), nullable=True, comment='渠道扣款/退款ID'),
        sa.Column('payload', sa.JSON(), nullable=True, comment='渠道原始响应'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_payments_order_id_orders', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_payments'),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])
    op.create_index('ix_payments_order_status', 'payments', ['order_id', 'status'])
    op.create_index('ix_payments_provider_reference', 'payments', ['provider_reference'])
    op.create_index(
        'uq_payments_capture_reference',
        'payments',
        ['provider_reference'],
        unique=True,
        sqlite_where=sa.text("status = 'paid'"),
        postgresql_where=sa.text("status = 'paid'"),
    )

    op.create_table(
        'refund_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='申请人'),
        sa.Column('requested_amount', sa.Numeric(precision=10, scale=2), nullable=True, comment='申请金额，空表示全额'),
        sa.Column('refunded_amount', sa.Numeric(precision=10, scale=2), nullable=True, comment='已退金额'),
        sa.Column('reason', sa.Text(), nullable=False, comment='申请原因'),
        sa.Column('admin_note', sa.Text(), nullable=True, comment='管理员备注'),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='requested', comment='requested/approved/denied/refunded/partially_refunded'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_refund_requests_order_id_orders', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_refund_requests_user_id_users', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_refund_requests'),
    )
    op.create_index('ix_refund_requests_id', 'refund_requests', ['id'])
    op.create_index('ix_refund_requests_order_id', 'refund_requests', ['order_id'])
    op.create_index('ix_refund_requests_user_id', 'refund_requests', ['user_id'])
    op.create_index('ix_refund_requests_status', 'refund_requests', ['status'])
    op.create_index('ix_refund_requests_order_created', 'refund_requests', ['order_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('refund_requests')
    op.drop_table('payments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('cart')
    op.drop_table('products')
    op.drop_table('users')
