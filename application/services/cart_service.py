"""
购物车应用服务 - 购物车快照读取与维护
"""
from typing import Callable, Iterable, List, Optional

from domain.cart.entity import CartLine, CartProductRow, PricedCartLine, validate_quantity
from domain.common.exceptions import (
    ProductNotFoundException,
    ShopperRoleRequiredException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.pricing.policy import price_product
from domain.user.entity import Customer
from core.logging_config import get_logger


logger = get_logger(__name__)


def price_cart_rows(rows: Iterable[CartProductRow]) -> List[PricedCartLine]:
    """将联表后的购物车行转为带定价信息的快照（保持输入顺序）"""
    priced = []
    for row in rows:
        pricing = price_product(row.price, row.discount_percentage, row.offer_message)
        priced.append(
            PricedCartLine(
                product_id=row.product_id,
                product_name=row.product_name,
                unit_price=pricing.price,
                effective_price=pricing.effective_price,
                discount_percent=pricing.discount_percent,
                has_discount=pricing.has_discount,
                quantity=row.quantity,
                offer_message=pricing.offer_message,
                image=row.image,
            )
        )
    return priced


def _require_shopper(customer: Customer) -> None:
    if not customer.is_shopper:
        raise ShopperRoleRequiredException()


class CartService:
    """购物车应用服务"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def load_snapshot(self, user_id: Optional[int]) -> List[PricedCartLine]:
        """
        读取购物车快照，按加入顺序排列

        Anonymous visitors have no cart and get an empty list; an id that
        does not resolve to an account raises ``UserNotFoundException``.
        """
        if user_id is None:
            return []
        async with self._uow_factory(readonly=True) as uow:
            customer = await uow.customer_repository.get_by_id(user_id)
            if customer is None:
                raise UserNotFoundException(str(user_id))
            rows = await uow.cart_repository.list_with_products(user_id)
        return price_cart_rows(rows)

    async def add_item(self, customer: Customer, product_id: int, quantity: int = 1) -> List[PricedCartLine]:
        _require_shopper(customer)
        validate_quantity(quantity)
        async with self._uow_factory() as uow:
            product = await uow.product_repository.get_by_id(product_id)
            if product is None:
                raise ProductNotFoundException(product_id)
            existing = await uow.cart_repository.get_line(customer.id, product_id)
            if existing:
                await uow.cart_repository.set_quantity(customer.id, product_id, existing.quantity + quantity)
            else:
                await uow.cart_repository.add(
                    CartLine(id=None, user_id=customer.id, product_id=product_id, quantity=quantity)
                )
            rows = await uow.cart_repository.list_with_products(customer.id)
        logger.info("cart_item_added", user_id=customer.id, product_id=product_id, quantity=quantity)
        return price_cart_rows(rows)

    async def update_quantity(self, customer: Customer, product_id: int, quantity: int) -> List[PricedCartLine]:
        _require_shopper(customer)
        validate_quantity(quantity)
        async with self._uow_factory() as uow:
            updated = await uow.cart_repository.set_quantity(customer.id, product_id, quantity)
            if not updated:
                raise ProductNotFoundException(product_id)
            rows = await uow.cart_repository.list_with_products(customer.id)
        logger.info("cart_item_updated", user_id=customer.id, product_id=product_id, quantity=quantity)
        return price_cart_rows(rows)

    async def remove_item(self, customer: Customer, product_id: int) -> List[PricedCartLine]:
        _require_shopper(customer)
        async with self._uow_factory() as uow:
            removed = await uow.cart_repository.remove(customer.id, product_id)
            rows = await uow.cart_repository.list_with_products(customer.id)
        if removed:
            logger.info("cart_item_removed", user_id=customer.id, product_id=product_id)
        return price_cart_rows(rows)
