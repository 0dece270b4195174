"""
订单数据库模型 - 订单头与明细
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单头

    除支付缓存字段（payment_method / payment_status / payment_reference）外创建后不可修改
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    # 账户删除后保留订单记录
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True, comment="用户ID"
    )

    total = Column(Numeric(precision=10, scale=2), nullable=False, comment="订单总额（含配送费）")
    delivery_method = Column(String(20), nullable=False, default="pickup", comment="pickup/delivery")
    delivery_address = Column(String(255), nullable=True, comment="配送地址")
    delivery_fee = Column(Numeric(precision=10, scale=2), nullable=False, default=0, comment="配送费")

    payment_method = Column(String(50), nullable=True, comment="支付方式")
    payment_status = Column(
        String(30),
        nullable=False,
        default="unpaid",
        index=True,
        comment="支付状态: unpaid/paid/refunded/partially_refunded"
    )
    payment_reference = Column(String(255), nullable=True, comment="渠道扣款ID")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="下单时间"
    )

    items = relationship("OrderItemModel", back_populates="order", lazy="select")

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
        Index("ix_orders_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, total={self.total}, payment_status='{self.payment_status}')>"


class OrderItemModel(Base):
    """订单明细：成交单价在下单时固化"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True, comment="订单ID"
    )
    # 商品删除后置空，读取方显示占位名称
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, comment="商品ID"
    )
    quantity = Column(Integer, nullable=False, comment="数量")
    unit_price = Column(Numeric(precision=10, scale=2), nullable=False, comment="成交单价")

    order = relationship("OrderModel", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
    )

    def __repr__(self):
        return f"<OrderItemModel(order_id={self.order_id}, product_id={self.product_id}, quantity={self.quantity})>"
