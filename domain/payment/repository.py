"""
支付台账仓储接口 - 只定义能做什么，不管怎么做

No update or delete: the ledger is append-only.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable, List, Optional

from .entity import Payment


class PaymentRepository(ABC):

    @abstractmethod
    async def append(self, payment: Payment) -> Payment:
        """追加台账记录（写入后立即 flush，保证先于订单缓存更新可见）"""
        pass

    @abstractmethod
    async def list_by_order(self, order_id: int) -> List[Payment]:
        """按创建顺序返回订单的全部台账记录"""
        pass

    @abstractmethod
    async def get_capture_by_reference(self, provider_reference: str) -> Optional[Payment]:
        """根据渠道扣款ID查找已记录的扣款"""
        pass

    @abstractmethod
    async def refunded_total(self, order_id: int) -> Decimal:
        """退款总额（台账求和）"""
        pass

    @abstractmethod
    async def refunded_totals(self, order_ids: Iterable[int]) -> dict[int, Decimal]:
        """批量退款总额，没有退款的订单不出现在结果中"""
        pass

    @abstractmethod
    async def list_refunds(self) -> List[dict]:
        """退款台账（联表订单与账户），最新在前"""
        pass
