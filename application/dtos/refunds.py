"""
Refund request DTOs
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from application.dto import DTOBase
from domain.refund_request.entity import RefundRequest


class RefundRequestCreateDTO(DTOBase):
    reason: str = Field(..., max_length=2000)
    amount: Optional[Decimal] = Field(default=None, description="申请金额，缺省为全额")


class RefundModerationDTO(DTOBase):
    admin_note: Optional[str] = Field(default=None, max_length=2000)


class RefundRequestDTO(DTOBase):
    id: int
    order_id: int
    user_id: Optional[int] = None
    status: str
    reason: str
    requested_amount: Optional[Decimal] = None
    refunded_amount: Optional[Decimal] = None
    admin_note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, req: RefundRequest) -> "RefundRequestDTO":
        return cls(
            id=req.id,
            order_id=req.order_id,
            user_id=req.user_id,
            status=req.status.value,
            reason=req.reason,
            requested_amount=req.requested_amount,
            refunded_amount=req.refunded_amount,
            admin_note=req.admin_note,
            created_at=req.created_at,
            updated_at=req.updated_at,
        )


class AdminRefundRequestRowDTO(DTOBase):
    request: RefundRequestDTO
    order_total: Decimal
    order_payment_status: str
    capture_reference: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
