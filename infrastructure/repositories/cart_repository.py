"""
购物车仓储实现
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.cart.entity import CartLine, CartProductRow
from domain.cart.repository import CartRepository
from infrastructure.models.cart import CartModel
from infrastructure.models.product import ProductModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyCartRepository(CartRepository):
    """购物车仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CartModel) -> CartLine:
        return CartLine(
            id=model.id,
            user_id=model.user_id,
            product_id=model.product_id,
            quantity=model.quantity,
        )

    async def list_with_products(self, user_id: int) -> List[CartProductRow]:
        result = await self.session.execute(
            select(CartModel, ProductModel)
            .join(ProductModel, ProductModel.id == CartModel.product_id)
            .where(CartModel.user_id == user_id)
            .order_by(CartModel.id.asc())
        )
        return [
            CartProductRow(
                cart_line_id=cart.id,
                product_id=product.id,
                quantity=cart.quantity,
                product_name=product.name,
                price=Decimal(str(product.price)),
                discount_percentage=Decimal(str(product.discount_percentage or 0)),
                offer_message=product.offer_message,
                image=product.image,
            )
            for cart, product in result.all()
        ]

    async def get_line(self, user_id: int, product_id: int) -> Optional[CartLine]:
        result = await self.session.execute(
            select(CartModel).where(CartModel.user_id == user_id, CartModel.product_id == product_id)
        )
        db_line = result.scalar_one_or_none()
        return self._to_entity(db_line) if db_line else None

    async def add(self, line: CartLine) -> CartLine:
        db_line = CartModel(user_id=line.user_id, product_id=line.product_id, quantity=line.quantity)
        self.session.add(db_line)
        await self.session.flush()
        await self.session.refresh(db_line)
        return self._to_entity(db_line)

    async def set_quantity(self, user_id: int, product_id: int, quantity: int) -> bool:
        result = await self.session.execute(
            update(CartModel)
            .where(CartModel.user_id == user_id, CartModel.product_id == product_id)
            .values(quantity=quantity)
        )
        return result.rowcount > 0

    async def remove(self, user_id: int, product_id: int) -> bool:
        result = await self.session.execute(
            delete(CartModel).where(CartModel.user_id == user_id, CartModel.product_id == product_id)
        )
        return result.rowcount > 0

    async def count_lines(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count(CartModel.id)).where(CartModel.user_id == user_id)
        )
        return result.scalar_one()

    async def clear(self, user_id: int) -> int:
        result = await self.session.execute(delete(CartModel).where(CartModel.user_id == user_id))
        logger.info("cart_cleared", user_id=user_id, removed=result.rowcount)
        return result.rowcount
