"""
账户仓储接口 - 只读
"""
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from .entity import Customer


class CustomerRepository(ABC):
    """Read-only access to customer accounts."""

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[Customer]:
        """根据ID获取账户，账户已删除时返回 None"""
        pass

    @abstractmethod
    async def get_many(self, user_ids: Iterable[int]) -> dict[int, Customer]:
        """批量获取账户（缺失的账户不会出现在结果中）"""
        pass
