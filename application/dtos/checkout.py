"""
Checkout DTOs: cart lines, the checkout context value object and the result
of turning a context into an order.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, Field

from application.dto import DTOBase
from domain.cart.entity import PricedCartLine


class CartLineDTO(DTOBase):
    product_id: int
    product_name: str
    unit_price: Decimal
    effective_price: Decimal
    discount_percent: Decimal
    has_discount: bool
    quantity: int
    offer_message: Optional[str] = None
    image: Optional[str] = None

    @classmethod
    def from_line(cls, line: PricedCartLine) -> "CartLineDTO":
        return cls(
            product_id=line.product_id,
            product_name=line.product_name,
            unit_price=line.unit_price,
            effective_price=line.effective_price,
            discount_percent=line.discount_percent,
            has_discount=line.has_discount,
            quantity=line.quantity,
            offer_message=line.offer_message,
            image=line.image,
        )


class CartAddDTO(DTOBase):
    product_id: int
    quantity: int = Field(default=1, description="加购数量，需 >= 1")


class CartUpdateDTO(DTOBase):
    quantity: int


class CheckoutLine(DTOBase):
    product_id: int
    product_name: str
    unit_price: Decimal
    effective_price: Decimal
    quantity: int
    line_total: Decimal

    model_config = ConfigDict(frozen=True)


class CheckoutContext(DTOBase):
    """
    结算上下文 - 不持久化的值对象

    total == subtotal + delivery_fee; delivery_address is None for pickup.
    """
    line_items: tuple[CheckoutLine, ...]
    delivery_method: str
    delivery_address: Optional[str] = None
    delivery_fee: Decimal
    subtotal: Decimal
    total: Decimal

    model_config = ConfigDict(frozen=True)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.line_items)


class OrderCreated(DTOBase):
    order_id: int

    model_config = ConfigDict(frozen=True)
