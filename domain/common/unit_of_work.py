"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager

from domain.cart.repository import CartRepository
from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentRepository
from domain.product.repository import ProductRepository
from domain.refund_request.repository import RefundRequestRepository
from domain.user.repository import CustomerRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象"""

    customer_repository: CustomerRepository
    product_repository: ProductRepository
    cart_repository: CartRepository
    order_repository: OrderRepository
    payment_repository: PaymentRepository
    refund_request_repository: RefundRequestRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.customer_repository = None  # type: ignore[assignment]
        self.product_repository = None  # type: ignore[assignment]
        self.cart_repository = None  # type: ignore[assignment]
        self.order_repository = None  # type: ignore[assignment]
        self.payment_repository = None  # type: ignore[assignment]
        self.refund_request_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
        ...

    @abstractmethod
    def savepoint(self) -> AbstractAsyncContextManager:
        """嵌套事务：块内异常只回滚到保存点，外层事务继续"""
        ...
