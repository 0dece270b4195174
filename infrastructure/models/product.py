"""
商品数据库模型 - 目录维护在其他服务，这里只读取
"""
from sqlalchemy import Column, Integer, String, Numeric, Text

from .base import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, comment="商品名")
    description = Column(Text, nullable=True, comment="描述")
    price = Column(Numeric(precision=10, scale=2), nullable=False, comment="原价")
    discount_percentage = Column(
        Numeric(precision=5, scale=2), nullable=False, default=0, comment="折扣百分比 0-100"
    )
    offer_message = Column(String(255), nullable=True, comment="促销文案")
    image = Column(String(255), nullable=True, comment="图片路径")
    category = Column(String(100), nullable=False, default="General", comment="分类")

    def __repr__(self):
        return f"<ProductModel(id={self.id}, name='{self.name}', price={self.price})>"
