"""
订单聚合 - 订单头 + 明细

The header is immutable once created except for the payment cache fields
(``payment_method``, ``payment_status``, ``payment_reference``). Those mirror
the ledger and only move along the payment state machine:

    unpaid -> paid -> partially_refunded -> refunded
                 \\________________________/

``refunded`` is terminal.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from domain.common.exceptions import (
    CaptureReferenceConflictException,
    InvalidPaymentTransitionException,
    DomainValidationException,
)
from domain.payment.entity import PaymentStatus, _ensure_utc
from domain.pricing.policy import ZERO, round_money
from domain.product.entity import DELETED_PRODUCT_NAME


@dataclass
class OrderItem:
    id: Optional[int]
    order_id: Optional[int]
    product_id: Optional[int]
    quantity: int
    unit_price: Decimal
    # populated by readers from the live catalog; None once the product is gone
    product_name: Optional[str] = None

    @property
    def is_deleted_product(self) -> bool:
        return self.product_id is None or not self.product_name

    @property
    def display_name(self) -> str:
        return DELETED_PRODUCT_NAME if self.is_deleted_product else self.product_name

    @property
    def line_total(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. total = 明细合计 + 配送费（创建时已计算）
    2. 支付状态只能按状态机转换
    3. 累计退款不得超过订单总额
    """

    id: Optional[int]
    user_id: int
    total: Decimal
    delivery_method: str
    delivery_address: Optional[str]
    delivery_fee: Decimal
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderItem] = field(default_factory=list)

    def __post_init__(self):
        if self.total < 0:
            raise DomainValidationException(f"Order total must not be negative: {self.total}", field="total")
        self.created_at = _ensure_utc(self.created_at)
        if not isinstance(self.payment_status, PaymentStatus):
            self.payment_status = PaymentStatus(self.payment_status)

    @property
    def subtotal(self) -> Decimal:
        return max(ZERO, round_money(self.total - self.delivery_fee))

    @property
    def is_paid(self) -> bool:
        return self.payment_status != PaymentStatus.UNPAID

    def _reject(self, attempted: PaymentStatus) -> None:
        raise InvalidPaymentTransitionException(self.id, self.payment_status.value, attempted.value)

    def mark_paid(self, method: str, reference: Optional[str]) -> bool:
        """
        记录扣款确认

        Returns False when the same capture was already applied, so duplicated
        gateway callbacks are harmless.
        """
        if self.payment_status == PaymentStatus.PAID and reference and reference == self.payment_reference:
            return False
        if self.payment_status != PaymentStatus.UNPAID:
            self._reject(PaymentStatus.PAID)
        self.payment_status = PaymentStatus.PAID
        self.payment_method = method
        self.payment_reference = reference
        return True

    def ensure_refundable(self) -> None:
        if self.payment_status not in (PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED):
            self._reject(PaymentStatus.REFUNDED)
        if not self.payment_reference:
            raise DomainValidationException(
                "Order has no capture reference to refund against.",
                error_type="MissingCaptureReference",
                field="payment_reference",
                details={"order_id": self.id},
            )

    def refund_status_for(self, cumulative_refunded: Decimal) -> PaymentStatus:
        return PaymentStatus.REFUNDED if cumulative_refunded >= self.total else PaymentStatus.PARTIALLY_REFUNDED

    def apply_refunded_total(self, cumulative_refunded: Decimal) -> PaymentStatus:
        """根据台账累计退款额推进状态"""
        self.ensure_refundable()
        if cumulative_refunded <= 0:
            raise DomainValidationException(
                "Refunded total must be positive to record a refund.",
                field="amount",
                details={"order_id": self.id, "refunded_total": str(cumulative_refunded)},
            )
        if cumulative_refunded > self.total:
            raise DomainValidationException(
                "Refunded total cannot exceed the order total.",
                field="amount",
                details={"order_id": self.id, "refunded_total": str(cumulative_refunded), "total": str(self.total)},
            )
        self.payment_status = self.refund_status_for(cumulative_refunded)
        return self.payment_status

    def link_capture_reference(self, reference: str, method: str, recorded_reference: Optional[str] = None) -> bool:
        """
        管理员手动关联线下对账得到的扣款ID

        ``recorded_reference`` is the capture already in the ledger, if any; the
        cached reference may only ever point at it. Never downgrades: only an
        unpaid order changes status. Returns True when the status moved to
        ``paid``.
        """
        if not reference:
            raise DomainValidationException("Capture reference is required.", field="reference")
        if recorded_reference and reference != recorded_reference:
            raise CaptureReferenceConflictException(self.id, reference, recorded_reference)
        upgraded = self.payment_status == PaymentStatus.UNPAID
        if upgraded:
            self.payment_status = PaymentStatus.PAID
        self.payment_reference = reference
        self.payment_method = method or self.payment_method
        return upgraded

    def status_from_ledger(self, has_capture: bool, cumulative_refunded: Decimal) -> PaymentStatus:
        """Status the ledger supports, never lower than the cached one."""
        if cumulative_refunded > 0:
            derived = self.refund_status_for(cumulative_refunded)
        elif has_capture:
            derived = PaymentStatus.PAID
        else:
            derived = PaymentStatus.UNPAID
        rank = {
            PaymentStatus.UNPAID: 0,
            PaymentStatus.PAID: 1,
            PaymentStatus.PARTIALLY_REFUNDED: 2,
            PaymentStatus.REFUNDED: 3,
        }
        return derived if rank[derived] >= rank[self.payment_status] else self.payment_status
