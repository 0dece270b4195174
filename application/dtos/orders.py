"""
Order read-side DTOs (history, invoice, admin dashboards)
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from application.dto import DTOBase, CustomerSummaryDTO
from application.dtos.refunds import RefundRequestDTO
from domain.order.entity import Order, OrderItem


class OrderItemDTO(DTOBase):
    product_id: Optional[int] = None
    product_name: str
    is_deleted_product: bool = False
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    @classmethod
    def from_entity(cls, item: OrderItem) -> "OrderItemDTO":
        return cls(
            product_id=item.product_id,
            product_name=item.display_name,
            is_deleted_product=item.is_deleted_product,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
        )


class OrderSummaryDTO(DTOBase):
    id: int
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    total: Decimal
    delivery_method: str
    delivery_address: Optional[str] = None
    delivery_fee: Decimal
    payment_method: Optional[str] = None
    payment_status: str
    payment_reference: Optional[str] = None
    items: list[OrderItemDTO] = []
    refunded_total: Decimal = Decimal("0.00")
    latest_refund_request: Optional[RefundRequestDTO] = None

    @classmethod
    def build(
        cls,
        order: Order,
        items: list[OrderItem],
        refunded_total: Decimal,
        latest_refund_request=None,
    ) -> "OrderSummaryDTO":
        return cls(
            id=order.id,
            user_id=order.user_id,
            created_at=order.created_at,
            total=order.total,
            delivery_method=order.delivery_method,
            delivery_address=order.delivery_address,
            delivery_fee=order.delivery_fee,
            payment_method=order.payment_method,
            payment_status=order.payment_status.value,
            payment_reference=order.payment_reference,
            items=[OrderItemDTO.from_entity(i) for i in items],
            refunded_total=refunded_total,
            latest_refund_request=(
                RefundRequestDTO.from_entity(latest_refund_request) if latest_refund_request else None
            ),
        )


class InvoiceDTO(DTOBase):
    order: OrderSummaryDTO
    customer: CustomerSummaryDTO
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal


class DeliveryDashboardEntryDTO(DTOBase):
    order: OrderSummaryDTO
    customer: CustomerSummaryDTO
    high_value_order: bool = False
    # 同一客户当天（UTC）的下单数
    customer_orders_that_day: int = 1


class RefundLedgerEntryDTO(DTOBase):
    payment_id: int
    order_id: int
    status: str
    method: str
    amount: Decimal
    provider_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    order_total: Decimal
    capture_reference: Optional[str] = None
    user_id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
