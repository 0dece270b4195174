"""
商品仓储实现 - 只读
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.product.entity import Product
from domain.product.repository import ProductRepository
from infrastructure.models.product import ProductModel


class SQLAlchemyProductRepository(ProductRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            name=model.name,
            price=Decimal(str(model.price)),
            discount_percentage=Decimal(str(model.discount_percentage or 0)),
            offer_message=model.offer_message,
            image=model.image,
            category=model.category,
        )

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        result = await self.session.execute(select(ProductModel).where(ProductModel.id == product_id))
        db_product = result.scalar_one_or_none()
        return self._to_entity(db_product) if db_product else None
