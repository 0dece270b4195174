"""
Payment DTOs (Pydantic v2) used at application boundaries.

Gateway-facing results keep the provider payload verbatim so support can
triage with the provider when something goes wrong.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from application.dto import DTOBase


class GatewayOrder(BaseModel):
    id: str
    status: str
    provider: str = "paypal"
    approve_url: Optional[str] = None


class CaptureResult(BaseModel):
    status: str
    capture_ids: list[str] = Field(default_factory=list)
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def capture_id(self) -> Optional[str]:
        return self.capture_ids[0] if self.capture_ids else None


class RefundResult(BaseModel):
    status: str
    id: Optional[str] = None
    amount: Optional[Decimal] = None
    debug_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# API 请求/响应
# ---------------------------------------------------------------------------
class DeliveryInputDTO(DTOBase):
    delivery_method: Optional[str] = Field(default=None, description="pickup/delivery，其他值按 pickup 处理")
    delivery_address: Optional[str] = Field(default=None, description="配送地址，缺省使用账户地址")


class AssistedCheckoutDTO(DeliveryInputDTO):
    waive_fee: bool = Field(default=False, description="免收配送费（仅管理员代客下单）")


class CaptureRequestDTO(DeliveryInputDTO):
    gateway_order_id: str = Field(..., min_length=1, description="网关订单ID")


class AdminRefundDTO(DTOBase):
    amount: Optional[Decimal] = Field(default=None, description="退款金额，缺省为全额")
    refund_request_id: Optional[int] = None
    admin_note: Optional[str] = Field(default=None, max_length=2000)


class LinkCaptureDTO(DTOBase):
    reference: str = Field(..., min_length=1, max_length=255)
    method: str = Field(default="paypal", max_length=50)

    @field_validator("reference")
    @classmethod
    def _strip_reference(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reference must not be blank")
        return v


class PaymentOutcomeDTO(DTOBase):
    order_id: int
    payment_status: str
    payment_reference: Optional[str] = None
    refunded_total: Decimal = Decimal("0.00")
    gateway_status: Optional[str] = None
    gateway_reference: Optional[str] = None
    already_recorded: bool = False
