"""
购物车数据库模型
"""
from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, CheckConstraint

from .base import Base


class CartModel(Base):
    """
    购物车行

    插入顺序即主键顺序；同一用户同一商品只有一行（加购时累加数量）
    """
    __tablename__ = "cart"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True, comment="用户ID"
    )
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, comment="商品ID"
    )
    quantity = Column(Integer, nullable=False, default=1, comment="数量")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_quantity_positive"),
    )

    def __repr__(self):
        return f"<CartModel(user_id={self.user_id}, product_id={self.product_id}, quantity={self.quantity})>"
