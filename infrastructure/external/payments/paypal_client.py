"""
PayPal REST (Orders v2) adapter on httpx.

- OAuth2 client-credentials token, cached until shortly before expiry.
- ``PayPal-Request-Id`` carries the caller's idempotency key so a replayed
  capture or refund is deduplicated by PayPal itself.
- Only connection-establishment failures are retried (see base client).
"""
from __future__ import annotations

import asyncio
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from application.dtos.payments import CaptureResult, GatewayOrder, RefundResult
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from core.settings import PaymentSettings, payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)


def _parse_amount(node: Optional[dict]) -> Optional[Decimal]:
    if not node or node.get("value") is None:
        return None
    try:
        return Decimal(str(node["value"]))
    except (InvalidOperation, ValueError):
        return None


class PayPalClient(BasePaymentClient):
    provider = "paypal"

    def __init__(
        self,
        settings: Optional[PaymentSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = settings or payment_settings
        super().__init__(
            base_url=cfg.paypal.base_url,
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            transport=transport,
        )
        if not cfg.paypal.client_id or not cfg.paypal.client_secret:
            raise RuntimeError("PAYMENT__PAYPAL__CLIENT_ID / PAYMENT__PAYPAL__CLIENT_SECRET not configured")
        self._client_id = cfg.paypal.client_id
        self._client_secret = cfg.paypal.client_secret
        self.currency = cfg.paypal.currency
        self._token_leeway = cfg.paypal.token_leeway_seconds
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # transport helpers
    # ------------------------------------------------------------------
    def _error_from_response(self, response: httpx.Response, operation: str) -> PaymentProviderError:
        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        if not isinstance(body, dict):
            body = {"raw": body}
        return PaymentProviderError(
            body.get("message") or f"PayPal {operation} failed with HTTP {response.status_code}",
            provider=self.provider,
            provider_code=body.get("name") or body.get("error"),
            debug_id=body.get("debug_id") or response.headers.get("PayPal-Debug-Id"),
            status_code=response.status_code,
            details={"operation": operation, "name": body.get("name"), "details": body.get("details")},
        )

    async def _send(self, operation: str, method: str, url: str, **kwargs) -> httpx.Response:
        async with self.client() as client:
            try:
                return await self._retry(lambda: client.request(method, url, **kwargs))
            except httpx.HTTPError as exc:
                logger.warning("paypal_transport_error", operation=operation, error=str(exc))
                raise PaymentRecoverableError(
                    f"PayPal {operation} could not be completed: {exc.__class__.__name__}",
                    provider=self.provider,
                    details={"operation": operation},
                ) from exc

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            response = await self._send(
                "oauth_token",
                "POST",
                "/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
                headers={"Accept": "application/json"},
            )
            if response.status_code >= 400:
                raise self._error_from_response(response, "oauth_token")
            body = response.json()
            self._token = body["access_token"]
            ttl = int(body.get("expires_in", 0))
            self._token_expires_at = time.monotonic() + max(0, ttl - self._token_leeway)
            return self._token

    async def _post(self, operation: str, path: str, payload: dict, idempotency_key: Optional[str]) -> dict[str, Any]:
        token = await self._access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if idempotency_key:
            headers["PayPal-Request-Id"] = idempotency_key
        response = await self._send(operation, "POST", path, json=payload, headers=headers)
        if response.status_code >= 400:
            error = self._error_from_response(response, operation)
            logger.warning(
                "paypal_request_failed",
                operation=operation,
                status_code=response.status_code,
                name=error.details.get("provider_code"),
                debug_id=error.debug_id,
            )
            raise error
        return response.json() if response.content else {}

    # ------------------------------------------------------------------
    # port implementation
    # ------------------------------------------------------------------
    async def create_order(self, amount: str, *, idempotency_key: Optional[str] = None) -> GatewayOrder:  # type: ignore[override]
        body = await self._post(
            "create_order",
            "/v2/checkout/orders",
            {
                "intent": "CAPTURE",
                "purchase_units": [{"amount": {"currency_code": self.currency, "value": amount}}],
            },
            idempotency_key,
        )
        approve_url = next(
            (link.get("href") for link in body.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        self._log("paypal_order_created", gateway_order_id=body.get("id"), status=self._map_status(body.get("status")))
        return GatewayOrder(id=body["id"], status=body.get("status", ""), provider=self.provider, approve_url=approve_url)

    async def capture_order(self, gateway_order_id: str, *, idempotency_key: Optional[str] = None) -> CaptureResult:  # type: ignore[override]
        body = await self._post(
            "capture_order",
            f"/v2/checkout/orders/{gateway_order_id}/capture",
            {},
            idempotency_key,
        )
        captures = [
            capture
            for unit in body.get("purchase_units", [])
            for capture in (unit.get("payments") or {}).get("captures", [])
        ]
        first = captures[0] if captures else {}
        amount_node = first.get("amount") or {}
        self._log(
            "paypal_order_captured",
            gateway_order_id=gateway_order_id,
            status=self._map_status(body.get("status")),
            capture_count=len(captures),
        )
        return CaptureResult(
            status=body.get("status", ""),
            capture_ids=[c["id"] for c in captures if c.get("id")],
            amount=_parse_amount(amount_node),
            currency=amount_node.get("currency_code"),
            payload=body,
        )

    async def refund_capture(  # type: ignore[override]
        self,
        capture_reference: str,
        amount: Optional[str],
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        payload: dict[str, Any] = {}
        if amount is not None:
            payload["amount"] = {"currency_code": self.currency, "value": amount}
        body = await self._post(
            "refund_capture",
            f"/v2/payments/captures/{capture_reference}/refund",
            payload,
            idempotency_key,
        )
        self._log(
            "paypal_capture_refunded",
            capture_reference=capture_reference,
            refund_id=body.get("id"),
            status=self._map_status(body.get("status")),
        )
        return RefundResult(
            status=body.get("status", ""),
            id=body.get("id"),
            amount=_parse_amount(body.get("amount")),
            debug_id=body.get("debug_id"),
            payload=body,
        )
