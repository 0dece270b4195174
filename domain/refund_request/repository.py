"""
退款申请仓储接口
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .entity import RefundRequest


class RefundRequestRepository(ABC):

    @abstractmethod
    async def create(self, request: RefundRequest) -> RefundRequest:
        pass

    @abstractmethod
    async def get_by_id(self, refund_request_id: int) -> Optional[RefundRequest]:
        pass

    @abstractmethod
    async def update(self, request: RefundRequest) -> RefundRequest:
        """更新状态、管理员备注与已退金额"""
        pass

    @abstractmethod
    async def list_by_order_ids(self, order_ids: Iterable[int]) -> List[RefundRequest]:
        """最新创建的在前（created_at DESC, id DESC）"""
        pass

    @abstractmethod
    async def list_all_with_orders(self) -> List[dict]:
        """管理员视图：联表订单与账户，最新在前"""
        pass


def latest_by_order(requests: Iterable[RefundRequest]) -> dict[int, RefundRequest]:
    """Input must be newest-first; keeps the first (most recent) per order."""
    latest: dict[int, RefundRequest] = {}
    for req in requests:
        latest.setdefault(req.order_id, req)
    return latest
