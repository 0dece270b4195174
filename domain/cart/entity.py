"""
购物车实体
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from domain.common.exceptions import InvalidQuantityException


def validate_quantity(quantity: int) -> int:
    """业务规则：数量必须 >= 1"""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityException(quantity)
    return quantity


@dataclass
class CartLine:
    id: Optional[int]
    user_id: int
    product_id: int
    quantity: int

    def __post_init__(self):
        validate_quantity(self.quantity)


@dataclass(frozen=True)
class CartProductRow:
    """A cart row joined with the live product it references."""

    cart_line_id: int
    product_id: int
    quantity: int
    product_name: str
    price: Decimal
    discount_percentage: Decimal
    offer_message: Optional[str] = None
    image: Optional[str] = None


@dataclass(frozen=True)
class PricedCartLine:
    product_id: int
    product_name: str
    unit_price: Decimal
    effective_price: Decimal
    discount_percent: Decimal
    has_discount: bool
    quantity: int
    offer_message: Optional[str] = None
    image: Optional[str] = None
