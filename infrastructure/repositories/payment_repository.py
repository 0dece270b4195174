"""
支付台账仓储实现 - 只追加
"""
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.payment.entity import Payment, PaymentStatus, REFUND_STATUSES
from domain.payment.repository import PaymentRepository
from domain.pricing.policy import ZERO, round_money
from infrastructure.models.order import OrderModel
from infrastructure.models.payment import PaymentModel
from infrastructure.models.user import UserModel
from core.logging_config import get_logger


logger = get_logger(__name__)

_REFUND_STATUS_VALUES = [s.value for s in REFUND_STATUSES]


class SQLAlchemyPaymentRepository(PaymentRepository):
    """台账仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            order_id=model.order_id,
            method=model.method,
            status=PaymentStatus(model.status),
            amount=Decimal(str(model.amount)),
            provider_reference=model.provider_reference,
            payload=model.payload or {},
            created_at=model.created_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        model = PaymentModel(
            order_id=entity.order_id,
            method=entity.method,
            status=entity.status.value,
            amount=entity.amount,
            provider_reference=entity.provider_reference,
            payload=entity.payload or {},
        )
        if entity.created_at is not None:
            model.created_at = entity.created_at
        return model

    async def append(self, payment: Payment) -> Payment:
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "ledger_entry_appended",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            status=db_payment.status,
            amount=str(db_payment.amount),
            provider_reference=db_payment.provider_reference,
        )
        return self._to_entity(db_payment)

    async def list_by_order(self, order_id: int) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.order_id == order_id).order_by(PaymentModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def get_capture_by_reference(self, provider_reference: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.provider_reference == provider_reference,
                PaymentModel.status == PaymentStatus.PAID.value,
            )
            .order_by(PaymentModel.id.asc())
            .limit(1)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def refunded_total(self, order_id: int) -> Decimal:
        result = await self.session.execute(
            select(func.sum(PaymentModel.amount)).where(
                PaymentModel.order_id == order_id,
                PaymentModel.status.in_(_REFUND_STATUS_VALUES),
            )
        )
        total = result.scalar_one_or_none()
        return round_money(Decimal(str(total))) if total is not None else ZERO

    async def refunded_totals(self, order_ids: Iterable[int]) -> dict[int, Decimal]:
        ids = list(order_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(PaymentModel.order_id, func.sum(PaymentModel.amount))
            .where(
                PaymentModel.order_id.in_(ids),
                PaymentModel.status.in_(_REFUND_STATUS_VALUES),
            )
            .group_by(PaymentModel.order_id)
        )
        return {order_id: round_money(Decimal(str(total))) for order_id, total in result.all()}

    async def list_refunds(self) -> List[dict]:
        result = await self.session.execute(
            select(PaymentModel, OrderModel, UserModel.username, UserModel.email)
            .join(OrderModel, OrderModel.id == PaymentModel.order_id)
            .outerjoin(UserModel, UserModel.id == OrderModel.user_id)
            .where(PaymentModel.status.in_(_REFUND_STATUS_VALUES))
            .order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
        )
        rows = []
        for payment, order, username, email in result.all():
            rows.append({
                "entry": self._to_entity(payment),
                "order_total": Decimal(str(order.total)),
                "capture_reference": order.payment_reference,
                "order_payment_status": order.payment_status,
                "user_id": order.user_id,
                "username": username,
                "email": email,
            })
        return rows
