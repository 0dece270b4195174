"""
退款申请仓储实现
"""
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.refund_request.entity import RefundRequest, RefundRequestStatus
from domain.refund_request.repository import RefundRequestRepository
from infrastructure.models.order import OrderModel
from infrastructure.models.refund_request import RefundRequestModel
from infrastructure.models.user import UserModel
from core.logging_config import get_logger


logger = get_logger(__name__)


def _to_decimal(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


class SQLAlchemyRefundRequestRepository(RefundRequestRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundRequestModel) -> RefundRequest:
        return RefundRequest(
            id=model.id,
            order_id=model.order_id,
            user_id=model.user_id,
            reason=model.reason,
            status=RefundRequestStatus(model.status),
            requested_amount=_to_decimal(model.requested_amount),
            refunded_amount=_to_decimal(model.refunded_amount),
            admin_note=model.admin_note,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, request: RefundRequest) -> RefundRequest:
        db_request = RefundRequestModel(
            order_id=request.order_id,
            user_id=request.user_id,
            reason=request.reason,
            status=request.status.value,
            requested_amount=request.requested_amount,
            refunded_amount=request.refunded_amount,
            admin_note=request.admin_note,
        )
        self.session.add(db_request)
        await self.session.flush()
        await self.session.refresh(db_request)
        logger.info(
            "refund_request_created",
            refund_request_id=db_request.id,
            order_id=db_request.order_id,
            requested_amount=str(db_request.requested_amount) if db_request.requested_amount is not None else None,
        )
        return self._to_entity(db_request)

    async def get_by_id(self, refund_request_id: int) -> Optional[RefundRequest]:
        result = await self.session.execute(
            select(RefundRequestModel).where(RefundRequestModel.id == refund_request_id)
        )
        db_request = result.scalar_one_or_none()
        return self._to_entity(db_request) if db_request else None

    async def update(self, request: RefundRequest) -> RefundRequest:
        result = await self.session.execute(
            select(RefundRequestModel).where(RefundRequestModel.id == request.id)
        )
        db_request = result.scalar_one_or_none()
        if not db_request:
            raise ValueError(f"RefundRequest with id {request.id} not found")

        db_request.status = request.status.value
        db_request.admin_note = request.admin_note
        db_request.refunded_amount = request.refunded_amount
        if request.updated_at is not None:
            db_request.updated_at = request.updated_at
        await self.session.flush()
        await self.session.refresh(db_request)

        logger.info(
            "refund_request_updated",
            refund_request_id=db_request.id,
            status=db_request.status,
            refunded_amount=str(db_request.refunded_amount) if db_request.refunded_amount is not None else None,
        )
        return self._to_entity(db_request)

    async def list_by_order_ids(self, order_ids: Iterable[int]) -> List[RefundRequest]:
        ids = list(order_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(RefundRequestModel)
            .where(RefundRequestModel.order_id.in_(ids))
            .order_by(RefundRequestModel.created_at.desc(), RefundRequestModel.id.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_all_with_orders(self) -> List[dict]:
        result = await self.session.execute(
            select(RefundRequestModel, OrderModel, UserModel.username, UserModel.email)
            .join(OrderModel, OrderModel.id == RefundRequestModel.order_id)
            .outerjoin(UserModel, UserModel.id == RefundRequestModel.user_id)
            .order_by(RefundRequestModel.created_at.desc(), RefundRequestModel.id.desc())
        )
        rows = []
        for request, order, username, email in result.all():
            rows.append({
                "request": self._to_entity(request),
                "order_total": Decimal(str(order.total)),
                "order_payment_status": order.payment_status,
                "capture_reference": order.payment_reference,
                "username": username,
                "email": email,
            })
        return rows
