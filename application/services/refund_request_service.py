"""
退款申请应用服务

Requests are bookkeeping only: approving or denying moves no money. Money
moves through ``PaymentService.refund_order`` which then updates the request.
"""
from typing import Callable, List, Optional

from application.dtos.refunds import AdminRefundRequestRowDTO, RefundRequestDTO
from core.logging_config import get_logger
from domain.common.exceptions import (
    AdminRoleRequiredException,
    NotOrderOwnerException,
    OrderNotFoundException,
    RefundRequestNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.refund_request.entity import RefundRequest, clean_reason, parse_requested_amount
from domain.user.entity import Customer


logger = get_logger(__name__)


def _require_admin(customer: Customer) -> None:
    if not customer.is_admin:
        raise AdminRoleRequiredException()


class RefundRequestService:

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def submit(
        self,
        customer: Customer,
        order_id: int,
        reason: Optional[str],
        amount=None,
    ) -> RefundRequestDTO:
        """订单所有者提交退款申请"""
        cleaned_reason = clean_reason(reason)
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            if order.user_id != customer.id:
                raise NotOrderOwnerException(order_id)
            requested = parse_requested_amount(amount, order.total)
            created = await uow.refund_request_repository.create(
                RefundRequest(
                    id=None,
                    order_id=order_id,
                    user_id=customer.id,
                    reason=cleaned_reason,
                    requested_amount=requested,
                )
            )
        logger.info(
            "refund_request_submitted",
            refund_request_id=created.id,
            order_id=order_id,
            user_id=customer.id,
            full_refund=requested is None,
        )
        return RefundRequestDTO.from_entity(created)

    async def _moderate(self, admin: Customer, refund_request_id: int, note: Optional[str], approve: bool):
        _require_admin(admin)
        async with self._uow_factory() as uow:
            request = await uow.refund_request_repository.get_by_id(refund_request_id)
            if request is None:
                raise RefundRequestNotFoundException(refund_request_id)
            if approve:
                request.approve(note)
            else:
                request.deny(note)
            updated = await uow.refund_request_repository.update(request)
        logger.info(
            "refund_request_moderated",
            refund_request_id=refund_request_id,
            admin_id=admin.id,
            status=updated.status.value,
        )
        return RefundRequestDTO.from_entity(updated)

    async def approve(self, admin: Customer, refund_request_id: int, note: Optional[str] = None) -> RefundRequestDTO:
        return await self._moderate(admin, refund_request_id, note, approve=True)

    async def deny(self, admin: Customer, refund_request_id: int, note: Optional[str] = None) -> RefundRequestDTO:
        return await self._moderate(admin, refund_request_id, note, approve=False)

    async def list_all(self, admin: Customer) -> List[AdminRefundRequestRowDTO]:
        _require_admin(admin)
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.refund_request_repository.list_all_with_orders()
        return [
            AdminRefundRequestRowDTO(
                request=RefundRequestDTO.from_entity(row["request"]),
                order_total=row["order_total"],
                order_payment_status=row["order_payment_status"],
                capture_reference=row["capture_reference"],
                username=row["username"],
                email=row["email"],
            )
            for row in rows
        ]

    async def list_for_customer(self, customer: Customer) -> List[RefundRequestDTO]:
        """shopper 查看自己订单的退款申请，最新在前"""
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_by_user(customer.id)
            requests = await uow.refund_request_repository.list_by_order_ids([o.id for o in orders])
        return [RefundRequestDTO.from_entity(r) for r in requests]
