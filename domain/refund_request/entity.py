"""
退款申请实体 - 与实际退款（台账）相互独立

Lifecycle:
    requested -> approved | denied                  (admin note only)
    requested | approved | partially_refunded
        -> refunded | partially_refunded            (gateway refund executed)
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    InvalidRefundReasonException,
    InvalidRefundAmountException,
    InvalidRefundRequestTransitionException,
    RefundExceedsOrderTotalException,
)
from domain.payment.entity import _ensure_utc
from domain.pricing.policy import ZERO, _to_decimal, round_money


class RefundRequestStatus(str, Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    DENIED = "denied"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


EXECUTABLE_STATUSES = frozenset({
    RefundRequestStatus.REQUESTED,
    RefundRequestStatus.APPROVED,
    RefundRequestStatus.PARTIALLY_REFUNDED,
})


def parse_requested_amount(raw, order_total: Decimal) -> Optional[Decimal]:
    """空值表示全额；否则必须 > 0 且不超过订单总额"""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    amount = _to_decimal(raw)
    if amount is None or amount <= 0:
        raise InvalidRefundAmountException(raw)
    amount = round_money(amount)
    if amount > order_total:
        raise RefundExceedsOrderTotalException(amount, order_total)
    return amount


def clean_reason(reason: Optional[str]) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise InvalidRefundReasonException()
    return cleaned


@dataclass
class RefundRequest:
    id: Optional[int]
    order_id: int
    user_id: int
    reason: str
    status: RefundRequestStatus = RefundRequestStatus.REQUESTED
    requested_amount: Optional[Decimal] = None
    refunded_amount: Optional[Decimal] = None
    admin_note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.reason = clean_reason(self.reason)
        if not isinstance(self.status, RefundRequestStatus):
            self.status = RefundRequestStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def is_full_refund_request(self) -> bool:
        return self.requested_amount is None

    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def _moderate(self, target: RefundRequestStatus, admin_note: Optional[str]) -> None:
        if self.status != RefundRequestStatus.REQUESTED:
            raise InvalidRefundRequestTransitionException(self.id, self.status.value, target.value)
        self.status = target
        self.admin_note = (admin_note or "").strip() or None
        self._touch()

    def approve(self, admin_note: Optional[str] = None) -> None:
        self._moderate(RefundRequestStatus.APPROVED, admin_note)

    def deny(self, admin_note: Optional[str] = None) -> None:
        self._moderate(RefundRequestStatus.DENIED, admin_note)

    def ensure_executable(self) -> None:
        if self.status not in EXECUTABLE_STATUSES:
            raise InvalidRefundRequestTransitionException(
                self.id, self.status.value, RefundRequestStatus.REFUNDED.value
            )

    def record_refund(self, amount: Decimal, fully_refunded: bool, admin_note: Optional[str] = None) -> None:
        """网关退款成功后记录到申请上（累加 refunded_amount）"""
        self.ensure_executable()
        self.refunded_amount = round_money((self.refunded_amount or ZERO) + amount)
        self.status = RefundRequestStatus.REFUNDED if fully_refunded else RefundRequestStatus.PARTIALLY_REFUNDED
        note = (admin_note or "").strip()
        if note:
            self.admin_note = note
        self._touch()
