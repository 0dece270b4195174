"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001


# Gateway statuses the core treats as a confirmed outcome
CAPTURE_CONFIRMED_STATUSES = frozenset({"COMPLETED"})
REFUND_CONFIRMED_STATUSES = frozenset({"COMPLETED", "PENDING"})

# Provider→internal status mapping (extend per needs)
PROVIDER_STATUS_TO_INTERNAL = {
    "paypal": {
        "CREATED": "created",
        "SAVED": "created",
        "APPROVED": "pending",
        "PAYER_ACTION_REQUIRED": "pending",
        "PENDING": "pending",
        "COMPLETED": "completed",
        "VOIDED": "canceled",
        "DECLINED": "failed",
        "FAILED": "failed",
        "CANCELLED": "canceled",
    },
}
