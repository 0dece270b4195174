import json
from decimal import Decimal

import httpx
import pytest

from core.settings import PaymentRetry, PaymentSettings, PayPalSettings
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.paypal_client import PayPalClient


def _settings(**paypal):
    return PaymentSettings(
        paypal=PayPalSettings(client_id="client-id", client_secret="client-secret", **paypal),
        retry=PaymentRetry(max=2, base_backoff=0.01),
    )


class PayPalSandbox:
    """Scripted PayPal API: token endpoint plus per-path responses."""

    def __init__(self, expires_in=3600):
        self.expires_in = expires_in
        self.requests = []
        self.routes = {}
        self.token_calls = 0

    def on(self, path, *responses):
        self.routes[path] = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v1/oauth2/token":
            self.token_calls += 1
            return httpx.Response(
                200,
                json={"access_token": f"token-{self.token_calls}", "expires_in": self.expires_in},
            )
        outcome = self.routes[request.url.path].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def api_requests(self):
        return [r for r in self.requests if r.url.path != "/v1/oauth2/token"]


def _client(sandbox, **paypal):
    return PayPalClient(_settings(**paypal), transport=httpx.MockTransport(sandbox))


@pytest.mark.asyncio
async def test_create_order_sends_amount_and_returns_approve_link():
    sandbox = PayPalSandbox()
    sandbox.on(
        "/v2/checkout/orders",
        httpx.Response(201, json={
            "id": "5O190127TN364715T",
            "status": "CREATED",
            "links": [
                {"rel": "self", "href": "https://api.sandbox.paypal.com/v2/checkout/orders/5O190127TN364715T"},
                {"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T"},
            ],
        }),
    )
    client = _client(sandbox)

    order = await client.create_order("9.00")

    assert order.id == "5O190127TN364715T"
    assert order.approve_url.endswith("token=5O190127TN364715T")
    (request,) = sandbox.api_requests()
    body = json.loads(request.content)
    assert body["intent"] == "CAPTURE"
    assert body["purchase_units"][0]["amount"] == {"currency_code": "SGD", "value": "9.00"}
    assert request.headers["Authorization"] == "Bearer token-1"
    assert "PayPal-Request-Id" not in request.headers
    await client.aclose()


@pytest.mark.asyncio
async def test_capture_parses_capture_and_sends_idempotency_header():
    sandbox = PayPalSandbox()
    sandbox.on(
        "/v2/checkout/orders/ORDER-1/capture",
        httpx.Response(201, json={
            "id": "ORDER-1",
            "status": "COMPLETED",
            "purchase_units": [{
                "payments": {"captures": [{
                    "id": "3C679366HH908993F",
                    "status": "COMPLETED",
                    "amount": {"currency_code": "SGD", "value": "9.00"},
                }]},
            }],
        }),
    )
    client = _client(sandbox)

    result = await client.capture_order("ORDER-1", idempotency_key="key-123")

    assert result.status == "COMPLETED"
    assert result.capture_id == "3C679366HH908993F"
    assert result.amount == Decimal("9.00")
    assert result.currency == "SGD"
    assert result.payload["id"] == "ORDER-1"
    assert sandbox.api_requests()[0].headers["PayPal-Request-Id"] == "key-123"
    await client.aclose()


@pytest.mark.asyncio
async def test_refund_omits_amount_for_full_refund():
    sandbox = PayPalSandbox()
    refund_body = {"id": "1JU08902781691411", "status": "COMPLETED", "amount": {"value": "9.00", "currency_code": "SGD"}}
    sandbox.on(
        "/v2/payments/captures/CAP-1/refund",
        httpx.Response(201, json=refund_body),
        httpx.Response(201, json={**refund_body, "amount": {"value": "4.00", "currency_code": "SGD"}}),
    )
    client = _client(sandbox)

    full = await client.refund_capture("CAP-1", None)
    partial = await client.refund_capture("CAP-1", "4.00")

    first, second = sandbox.api_requests()
    assert json.loads(first.content) == {}
    assert json.loads(second.content) == {"amount": {"currency_code": "SGD", "value": "4.00"}}
    assert full.id == "1JU08902781691411"
    assert full.amount == Decimal("9.00")
    assert partial.amount == Decimal("4.00")
    # 令牌在有效期内复用
    assert sandbox.token_calls == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed():
    sandbox = PayPalSandbox(expires_in=30)
    sandbox.on(
        "/v2/payments/captures/CAP-1/refund",
        httpx.Response(201, json={"id": "R1", "status": "COMPLETED"}),
        httpx.Response(201, json={"id": "R2", "status": "COMPLETED"}),
    )
    client = _client(sandbox, token_leeway_seconds=60)

    await client.refund_capture("CAP-1", "1.00")
    await client.refund_capture("CAP-1", "1.00")

    assert sandbox.token_calls == 2
    await client.aclose()


@pytest.mark.asyncio
async def test_error_response_keeps_provider_diagnostics():
    sandbox = PayPalSandbox()
    sandbox.on(
        "/v2/checkout/orders/ORDER-1/capture",
        httpx.Response(422, json={
            "name": "UNPROCESSABLE_ENTITY",
            "message": "The requested action could not be performed.",
            "debug_id": "f2b8c1e6a9d3",
            "details": [{"issue": "ORDER_NOT_APPROVED"}],
        }),
    )
    client = _client(sandbox)

    with pytest.raises(PaymentProviderError) as excinfo:
        await client.capture_order("ORDER-1")

    error = excinfo.value
    assert error.status_code == 422
    assert error.debug_id == "f2b8c1e6a9d3"
    assert error.details["provider_code"] == "UNPROCESSABLE_ENTITY"
    assert error.details["details"] == [{"issue": "ORDER_NOT_APPROVED"}]
    await client.aclose()


@pytest.mark.asyncio
async def test_connect_errors_are_retried():
    sandbox = PayPalSandbox()
    sandbox.on(
        "/v2/checkout/orders/ORDER-1/capture",
        httpx.ConnectError("connection refused"),
        httpx.ConnectError("connection refused"),
        httpx.Response(201, json={"id": "ORDER-1", "status": "COMPLETED"}),
    )
    client = _client(sandbox)

    result = await client.capture_order("ORDER-1")

    assert result.status == "COMPLETED"
    assert result.capture_id is None
    assert len(sandbox.api_requests()) == 3
    await client.aclose()


@pytest.mark.asyncio
async def test_read_timeout_is_not_replayed():
    sandbox = PayPalSandbox()
    sandbox.on(
        "/v2/payments/captures/CAP-1/refund",
        httpx.ReadTimeout("read timed out"),
        httpx.Response(201, json={"id": "R1", "status": "COMPLETED"}),
    )
    client = _client(sandbox)

    with pytest.raises(PaymentRecoverableError):
        await client.refund_capture("CAP-1", "4.00")
    assert len(sandbox.api_requests()) == 1
    await client.aclose()


def test_missing_credentials_are_rejected():
    with pytest.raises(RuntimeError):
        PayPalClient(PaymentSettings(paypal=PayPalSettings(client_id=None, client_secret=None)))
