"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Amounts cross the port as decimal strings with two places ("12.50").
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import CaptureResult, GatewayOrder, RefundResult


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Every method raises ``PaymentGatewayException`` on a non-2xx answer or a
    transport failure, carrying the provider diagnostics verbatim.
    """

    provider: str

    async def create_order(self, amount: str, *, idempotency_key: Optional[str] = None) -> GatewayOrder: ...

    async def capture_order(
        self, gateway_order_id: str, *, idempotency_key: Optional[str] = None
    ) -> CaptureResult: ...

    async def refund_capture(
        self,
        capture_reference: str,
        amount: Optional[str],
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult: ...
