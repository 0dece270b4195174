"""
支付台账数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型

只追加：仓储层不提供更新或删除。
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, JSON, Index, ForeignKey, text
)
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    台账记录

    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True, comment="订单ID"
    )
    method = Column(String(50), nullable=False, comment="支付方式/渠道: paypal/manual")
    status = Column(
        String(30), nullable=False, index=True, comment="paid/refunded/partially_refunded"
    )
    amount = Column(Numeric(precision=10, scale=2), nullable=False, comment="金额")
    provider_reference = Column(String(255), nullable=True, comment="渠道扣款/退款ID")

    # 渠道原始响应，使用 payload 列名
    payload = Column(JSON, nullable=True, comment="渠道原始响应")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )

    __table_args__ = (
        Index("ix_payments_order_status", "order_id", "status"),
        Index("ix_payments_provider_reference", "provider_reference"),
        # 一笔扣款只能入账一次
        Index(
            "uq_payments_capture_reference",
            "provider_reference",
            unique=True,
            sqlite_where=text("status = 'paid'"),
            postgresql_where=text("status = 'paid'"),
        ),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, order_id={self.order_id}, "
            f"status='{self.status}', amount={self.amount})>"
        )
