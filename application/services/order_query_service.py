"""
订单读模型 - 历史订单、发票、配送面板与退款台账

Refunded totals always come from the ledger, never from a cached column.
"""
from collections import Counter
from typing import Callable, List

from application.dto import CustomerSummaryDTO
from application.dtos.orders import (
    DeliveryDashboardEntryDTO,
    InvoiceDTO,
    OrderSummaryDTO,
    RefundLedgerEntryDTO,
)
from core.config import settings
from domain.common.exceptions import (
    AdminRoleRequiredException,
    NotOrderOwnerException,
    OrderNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.pricing.policy import ZERO
from domain.refund_request.repository import latest_by_order
from domain.user.entity import Customer


class OrderQueryService:

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def _summaries(self, uow: AbstractUnitOfWork, orders: List[Order]) -> List[OrderSummaryDTO]:
        ids = [o.id for o in orders]
        items = await uow.order_repository.items_by_order_ids(ids)
        refunded = await uow.payment_repository.refunded_totals(ids)
        latest = latest_by_order(await uow.refund_request_repository.list_by_order_ids(ids))
        return [
            OrderSummaryDTO.build(
                order,
                items.get(order.id, []),
                refunded.get(order.id, ZERO),
                latest.get(order.id),
            )
            for order in orders
        ]

    async def history(self, customer: Customer) -> List[OrderSummaryDTO]:
        """shopper 看自己的订单，admin 看全部"""
        async with self._uow_factory(readonly=True) as uow:
            if customer.is_admin:
                orders = await uow.order_repository.list_all()
            else:
                orders = await uow.order_repository.list_by_user(customer.id)
            return await self._summaries(uow, orders)

    async def invoice(self, customer: Customer, order_id: int) -> InvoiceDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            if not customer.is_admin and order.user_id != customer.id:
                raise NotOrderOwnerException(order_id)
            summary = (await self._summaries(uow, [order]))[0]
            owner = (
                await uow.customer_repository.get_by_id(order.user_id)
                if order.user_id is not None else None
            )
        return InvoiceDTO(
            order=summary,
            customer=CustomerSummaryDTO.from_customer(owner, order.user_id),
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
            total=order.total,
        )

    async def deliveries_dashboard(self, admin: Customer) -> List[DeliveryDashboardEntryDTO]:
        if not admin.is_admin:
            raise AdminRoleRequiredException()
        threshold = settings.checkout.high_value_threshold
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_all()
            summaries = await self._summaries(uow, orders)
            customers = await uow.customer_repository.get_many(o.user_id for o in orders)

        per_day = Counter(
            (o.user_id, o.created_at.date() if o.created_at else None) for o in orders
        )
        return [
            DeliveryDashboardEntryDTO(
                order=summary,
                customer=CustomerSummaryDTO.from_customer(customers.get(order.user_id), order.user_id),
                high_value_order=order.total > threshold,
                customer_orders_that_day=per_day[(order.user_id, order.created_at.date() if order.created_at else None)],
            )
            for order, summary in zip(orders, summaries)
        ]

    async def refund_ledger(self, admin: Customer) -> List[RefundLedgerEntryDTO]:
        if not admin.is_admin:
            raise AdminRoleRequiredException()
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.payment_repository.list_refunds()
        return [
            RefundLedgerEntryDTO(
                payment_id=row["entry"].id,
                order_id=row["entry"].order_id,
                status=row["entry"].status.value,
                method=row["entry"].method,
                amount=row["entry"].amount,
                provider_reference=row["entry"].provider_reference,
                created_at=row["entry"].created_at,
                order_total=row["order_total"],
                capture_reference=row["capture_reference"],
                user_id=row["user_id"],
                username=row["username"],
                email=row["email"],
            )
            for row in rows
        ]
