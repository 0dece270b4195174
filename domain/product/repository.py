"""
商品仓储接口 - 只读
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Product


class ProductRepository(ABC):

    @abstractmethod
    async def get_by_id(self, product_id: int) -> Optional[Product]:
        pass
