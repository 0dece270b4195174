"""
支付台账实体 - 只追加（append-only）

Ledger rows are never updated or deleted. Refunded totals are derived by
summation so the history stays auditable and a stale order cache can always
be rebuilt from it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from domain.common.exceptions import DomainValidationException
from domain.pricing.policy import ZERO, round_money


class PaymentStatus(str, Enum):
    """Order payment status; ledger rows reuse the non-``unpaid`` values."""
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


REFUND_STATUSES = frozenset({PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Payment:
    """
    台账条目

    业务规则：
    1. 金额必须 >= 0
    2. 状态只能是 paid / refunded / partially_refunded
    """

    id: Optional[int]
    order_id: int
    method: str
    status: PaymentStatus
    amount: Decimal
    provider_reference: Optional[str] = None
    payload: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.status == PaymentStatus.UNPAID:
            raise DomainValidationException("Ledger rows cannot record an unpaid status", field="status")
        if self.amount < 0:
            raise DomainValidationException(f"Ledger amount must not be negative: {self.amount}", field="amount")
        object.__setattr__(self, "amount", round_money(self.amount))
        object.__setattr__(self, "created_at", _ensure_utc(self.created_at))

    @property
    def is_refund(self) -> bool:
        return self.status in REFUND_STATUSES

    @property
    def is_capture(self) -> bool:
        return self.status == PaymentStatus.PAID


def refunded_total(entries: Iterable[Payment]) -> Decimal:
    return round_money(sum((e.amount for e in entries if e.is_refund), ZERO))
