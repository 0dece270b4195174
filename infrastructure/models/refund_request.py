"""
退款申请数据库模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, ForeignKey, Index
from datetime import datetime, timezone

from .base import Base


class RefundRequestModel(Base):
    __tablename__ = "refund_requests"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True, comment="订单ID"
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True, comment="申请人"
    )
    requested_amount = Column(Numeric(precision=10, scale=2), nullable=True, comment="申请金额，空表示全额")
    refunded_amount = Column(Numeric(precision=10, scale=2), nullable=True, comment="已退金额")
    reason = Column(Text, nullable=False, comment="申请原因")
    admin_note = Column(Text, nullable=True, comment="管理员备注")
    status = Column(
        String(30),
        nullable=False,
        default="requested",
        index=True,
        comment="requested/approved/denied/refunded/partially_refunded"
    )
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_refund_requests_order_created", "order_id", "created_at"),
    )

    def __repr__(self):
        return f"<RefundRequestModel(id={self.id}, order_id={self.order_id}, status='{self.status}')>"
