"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import itertools
import os
import tempfile
from decimal import Decimal
from typing import Optional

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# 测试使用临时 SQLite 文件库（外键、SAVEPOINT 均可用）
_DB_DIR = tempfile.mkdtemp(prefix="shop-checkout-tests-")
os.environ["DATABASE__URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"

import pytest
from sqlalchemy import delete, func, select

from application.dtos.payments import CaptureResult, GatewayOrder, RefundResult
from domain.payment.entity import Payment
from domain.user.entity import Customer
from infrastructure.database import AsyncSessionLocal, create_tables, drop_tables, engine
from infrastructure.models import CartModel, ProductModel, UserModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


class StubGateway:
    """In-memory stand-in for the PayPal adapter; records every call."""

    provider = "paypal"

    def __init__(self):
        self.capture_status = "COMPLETED"
        self.capture_ids = ["CAP-1"]
        self.capture_amount: Optional[Decimal] = None
        self.refund_status = "COMPLETED"
        self.refund_amount: Optional[Decimal] = None
        self.calls = []
        self.closed = False
        self._refund_seq = itertools.count(1)

    async def create_order(self, amount, *, idempotency_key=None):
        self.calls.append(("create_order", amount, idempotency_key))
        return GatewayOrder(id="GW-ORDER-1", status="CREATED", provider=self.provider,
                            approve_url="https://www.sandbox.paypal.com/checkoutnow?token=GW-ORDER-1")

    async def capture_order(self, gateway_order_id, *, idempotency_key=None):
        self.calls.append(("capture_order", gateway_order_id, idempotency_key))
        return CaptureResult(
            status=self.capture_status,
            capture_ids=list(self.capture_ids),
            amount=self.capture_amount,
            currency="SGD",
            payload={"id": gateway_order_id, "status": self.capture_status},
        )

    async def refund_capture(self, capture_reference, amount, *, idempotency_key=None):
        self.calls.append(("refund_capture", capture_reference, amount, idempotency_key))
        if self.refund_amount is not None:
            confirmed = self.refund_amount
        else:
            confirmed = Decimal(amount) if amount is not None else None
        refund_id = f"REF-{next(self._refund_seq)}"
        return RefundResult(
            status=self.refund_status,
            id=refund_id,
            amount=confirmed,
            debug_id="dbg-1" if self.refund_status not in ("COMPLETED", "PENDING") else None,
            payload={"id": refund_id, "status": self.refund_status},
        )

    async def aclose(self):
        self.closed = True

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]


class Seeder:
    """直接写 ORM 模型准备测试数据（账户与商品由其他服务维护）"""

    def __init__(self):
        self._seq = itertools.count(1)

    async def _add(self, model):
        async with AsyncSessionLocal() as session:
            session.add(model)
            await session.commit()
        return model

    async def customer(self, *, role="user", address=None, free_delivery=False) -> Customer:
        n = next(self._seq)
        model = await self._add(
            UserModel(
                username=f"user{n}",
                email=f"user{n}@example.com",
                role=role,
                address=address,
                free_delivery=free_delivery,
            )
        )
        return Customer(
            id=model.id,
            username=model.username,
            email=model.email,
            role=role,
            address=address,
            free_delivery=free_delivery,
        )

    async def admin(self) -> Customer:
        return await self.customer(role="admin")

    async def product(self, price="10.00", discount="0", name=None, offer_message=None) -> int:
        n = next(self._seq)
        model = await self._add(
            ProductModel(
                name=name or f"Product {n}",
                price=Decimal(price),
                discount_percentage=Decimal(discount),
                offer_message=offer_message,
            )
        )
        return model.id

    async def cart(self, user_id: int, product_id: int, quantity: int = 1) -> None:
        await self._add(CartModel(user_id=user_id, product_id=product_id, quantity=quantity))

    async def delete_product(self, product_id: int) -> None:
        async with AsyncSessionLocal() as session:
            await session.execute(delete(ProductModel).where(ProductModel.id == product_id))
            await session.commit()

    async def delete_user(self, user_id: int) -> None:
        async with AsyncSessionLocal() as session:
            await session.execute(delete(UserModel).where(UserModel.id == user_id))
            await session.commit()

    async def count(self, model) -> int:
        async with AsyncSessionLocal() as session:
            return await session.scalar(select(func.count()).select_from(model))

    async def ledger(self, order_id: int) -> list[Payment]:
        async with SQLAlchemyUnitOfWork(readonly=True) as uow:
            return await uow.payment_repository.list_by_order(order_id)

    async def order(self, order_id: int):
        async with SQLAlchemyUnitOfWork(readonly=True) as uow:
            return await uow.order_repository.get_by_id(order_id)


@pytest.fixture
async def db():
    await create_tables()
    try:
        yield
    finally:
        await drop_tables()
        # 连接池按测试释放，避免跨事件循环复用连接
        await engine.dispose()


@pytest.fixture
def uow_factory():
    return SQLAlchemyUnitOfWork


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder()


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def paid_order(seed, gateway):
    """下单并经网关扣款，返回 (shopper, order_id)"""
    from application.services.payment_service import PaymentService

    async def _make(price="9.00", quantity=1, capture_id="CAP-1", shopper=None):
        shopper = shopper or await seed.customer()
        product_id = await seed.product(price=price)
        await seed.cart(shopper.id, product_id, quantity)
        gateway.capture_ids = [capture_id]
        service = PaymentService(SQLAlchemyUnitOfWork, gateway=gateway)
        outcome = await service.capture_payment(shopper, f"GW-{capture_id}")
        return shopper, outcome.order_id

    return _make
