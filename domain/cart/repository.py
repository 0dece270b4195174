"""
购物车仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import CartLine, CartProductRow


class CartRepository(ABC):
    """购物车仓储抽象接口"""

    @abstractmethod
    async def list_with_products(self, user_id: int) -> List[CartProductRow]:
        """按插入顺序返回用户购物车（联表最新商品数据）"""
        pass

    @abstractmethod
    async def get_line(self, user_id: int, product_id: int) -> Optional[CartLine]:
        pass

    @abstractmethod
    async def add(self, line: CartLine) -> CartLine:
        pass

    @abstractmethod
    async def set_quantity(self, user_id: int, product_id: int, quantity: int) -> bool:
        """返回是否存在该行"""
        pass

    @abstractmethod
    async def remove(self, user_id: int, product_id: int) -> bool:
        pass

    @abstractmethod
    async def count_lines(self, user_id: int) -> int:
        pass

    @abstractmethod
    async def clear(self, user_id: int) -> int:
        """清空购物车，返回删除行数"""
        pass
