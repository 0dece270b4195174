"""
订单仓储接口
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .entity import Order, OrderItem


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """插入订单头（flush 以获得ID）"""
        pass

    @abstractmethod
    async def add_items(self, order_id: int, items: Iterable[OrderItem]) -> List[OrderItem]:
        """插入订单明细"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        """根据ID获取订单头（不含明细）"""
        pass

    @abstractmethod
    async def get_for_update(self, order_id: int) -> Optional[Order]:
        """在当前事务中加锁读取订单头"""
        pass

    @abstractmethod
    async def update_payment_cache(self, order: Order) -> Order:
        """仅更新支付缓存字段"""
        pass

    @abstractmethod
    async def list_by_user(self, user_id: int) -> List[Order]:
        pass

    @abstractmethod
    async def list_all(self) -> List[Order]:
        pass

    @abstractmethod
    async def items_by_order_ids(self, order_ids: Iterable[int]) -> dict[int, List[OrderItem]]:
        """批量获取明细（联表商品名，商品已删除时 product_name 为 None）"""
        pass
