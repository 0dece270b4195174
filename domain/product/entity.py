"""
商品（只读视图）- 目录维护不在本服务内
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

DELETED_PRODUCT_NAME = "Deleted product"


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: Decimal
    discount_percentage: Decimal = Decimal("0")
    offer_message: Optional[str] = None
    image: Optional[str] = None
    category: str = "General"
