"""HTTP surface: routing, identity, role checks and error mapping."""
from decimal import Decimal

import httpx
import jwt
import pytest

from api.dependencies import get_gateway, get_task_dispatcher
from core.config import settings
from main import app


def _token(user_id) -> str:
    return jwt.encode({"sub": str(user_id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _auth(customer) -> dict:
    return {"Authorization": f"Bearer {_token(customer.id)}"}


class FakeDispatcher:
    def __init__(self):
        self.enqueued = []

    def enqueue_reconcile(self, order_id):
        self.enqueued.append(order_id)
        return "task-123"


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
async def client(db, gateway, dispatcher):
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_task_dispatcher] = lambda: dispatcher
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health_and_request_id(client):
    resp = await client.get("/health", headers={"X-Request-ID": "req-42"})
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"] == "req-42"


@pytest.mark.asyncio
async def test_anonymous_cart_is_empty(client):
    resp = await client.get("/api/v1/cart")
    assert resp.status_code == 200
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_bad_or_orphaned_tokens_are_unauthorized(client, seed):
    resp = await client.get("/api/v1/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"

    gone = await seed.customer()
    await seed.delete_user(gone.id)
    resp = await client.get("/api/v1/orders", headers=_auth(gone))
    assert resp.status_code == 401
    assert resp.json()["error"]["type"] == "Unauthorized"

    assert (await client.get("/api/v1/orders")).status_code == 401


@pytest.mark.asyncio
async def test_checkout_validation_errors_map_to_400(client, seed):
    shopper = await seed.customer()
    product_id = await seed.product(price="0.80")

    resp = await client.post("/api/v1/checkout/preview", json={}, headers=_auth(shopper))
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "EmptyCart"

    await client.post("/api/v1/cart/items", json={"product_id": product_id}, headers=_auth(shopper))
    resp = await client.post(
        "/api/v1/checkout/preview", json={"delivery_method": "delivery"}, headers=_auth(shopper)
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "MissingDeliveryAddress"

    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": product_id, "quantity": "many"}, headers=_auth(shopper)
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "ValidationError"


@pytest.mark.asyncio
async def test_shopper_cannot_use_admin_routes_and_admin_cannot_checkout(client, seed):
    shopper = await seed.customer()
    admin = await seed.admin()

    assert (await client.get("/api/v1/admin/deliveries", headers=_auth(shopper))).status_code == 403
    resp = await client.post("/api/v1/checkout/pay-later", json={}, headers=_auth(admin))
    assert resp.status_code == 403
    assert resp.json()["error"]["type"] == "ShopperRoleRequired"


@pytest.mark.asyncio
async def test_paypal_checkout_refund_round_trip(client, seed, gateway):
    shopper = await seed.customer(address="10 Bayfront Ave")
    admin = await seed.admin()
    product_id = await seed.product(price="1.50")

    resp = await client.post(
        "/api/v1/cart/items", json={"product_id": product_id, "quantity": 5}, headers=_auth(shopper)
    )
    assert resp.status_code == 200
    assert resp.json()["data"][0]["quantity"] == 5

    preview = (await client.post("/api/v1/checkout/preview", json={}, headers=_auth(shopper))).json()["data"]
    assert Decimal(preview["total"]) == Decimal("7.50")

    created = await client.post("/api/v1/checkout/paypal/orders", json={}, headers=_auth(shopper))
    assert created.json()["data"]["approve_url"]

    captured = await client.post(
        "/api/v1/checkout/paypal/capture",
        json={"gateway_order_id": created.json()["data"]["id"]},
        headers=_auth(shopper),
    )
    assert captured.status_code == 200
    outcome = captured.json()["data"]
    assert outcome["payment_status"] == "paid"
    order_id = outcome["order_id"]

    history = (await client.get("/api/v1/orders", headers=_auth(shopper))).json()["data"]
    assert [o["id"] for o in history] == [order_id]

    request = await client.post(
        f"/api/v1/orders/{order_id}/refund-requests",
        json={"reason": "Arrived cold", "amount": "3.00"},
        headers=_auth(shopper),
    )
    assert request.status_code == 200
    request_id = request.json()["data"]["id"]

    approved = await client.post(
        f"/api/v1/refund-requests/{request_id}/approve", json={"admin_note": "ok"}, headers=_auth(admin)
    )
    assert approved.json()["data"]["status"] == "approved"

    too_much = await client.post(
        f"/api/v1/admin/orders/{order_id}/refund", json={"amount": "12.00"}, headers=_auth(admin)
    )
    assert too_much.status_code == 400

    refunded = await client.post(
        f"/api/v1/admin/orders/{order_id}/refund",
        json={"amount": "3.00", "refund_request_id": request_id},
        headers=_auth(admin),
    )
    assert refunded.status_code == 200
    assert refunded.json()["data"]["payment_status"] == "partially_refunded"

    ledger = (await client.get("/api/v1/admin/refunds", headers=_auth(admin))).json()["data"]
    assert [Decimal(e["amount"]) for e in ledger] == [Decimal("3.00")]

    mine = (await client.get("/api/v1/refund-requests/mine", headers=_auth(shopper))).json()["data"]
    assert mine[0]["status"] == "partially_refunded"

    invoice = await client.get(f"/api/v1/orders/{order_id}/invoice", headers=_auth(shopper))
    assert Decimal(invoice.json()["data"]["order"]["refunded_total"]) == Decimal("3.00")


@pytest.mark.asyncio
async def test_gateway_failure_maps_to_500(client, seed, gateway):
    shopper = await seed.customer()
    product_id = await seed.product()
    await seed.cart(shopper.id, product_id, 1)
    gateway.capture_status = "DECLINED"

    resp = await client.post(
        "/api/v1/checkout/paypal/capture", json={"gateway_order_id": "GW-1"}, headers=_auth(shopper)
    )

    assert resp.status_code == 500
    assert resp.json()["error"]["details"]["provider_code"] == "DECLINED"


@pytest.mark.asyncio
async def test_reconcile_inline_and_in_background(client, seed, dispatcher):
    shopper = await seed.customer()
    admin = await seed.admin()
    product_id = await seed.product()
    await seed.cart(shopper.id, product_id, 1)
    placed = await client.post("/api/v1/checkout/pay-later", json={}, headers=_auth(shopper))
    order_id = placed.json()["data"]["order_id"]

    inline = await client.post(f"/api/v1/admin/orders/{order_id}/reconcile", headers=_auth(admin))
    assert inline.json()["data"]["payment_status"] == "unpaid"

    queued = await client.post(
        f"/api/v1/admin/orders/{order_id}/reconcile", params={"background": "true"}, headers=_auth(admin)
    )
    assert queued.json()["data"] == {"order_id": order_id, "task_id": "task-123"}
    assert dispatcher.enqueued == [order_id]

    linked = await client.post(
        f"/api/v1/admin/orders/{order_id}/capture-reference",
        json={"reference": "  CAP-MANUAL  "},
        headers=_auth(admin),
    )
    assert linked.json()["data"]["payment_reference"] == "CAP-MANUAL"
    assert linked.json()["data"]["payment_status"] == "paid"


@pytest.mark.asyncio
async def test_admin_places_order_for_shopper_with_fee_waived(client, seed):
    shopper = await seed.customer(address="3 Orchard Road")
    admin = await seed.admin()
    product_id = await seed.product(price="5.00")
    await seed.cart(shopper.id, product_id, 2)
    body = {"delivery_method": "delivery", "waive_fee": True}

    forbidden = await client.post(f"/api/v1/admin/users/{shopper.id}/pay-later", json=body, headers=_auth(shopper))
    assert forbidden.status_code == 403

    resp = await client.post(f"/api/v1/admin/users/{shopper.id}/pay-later", json=body, headers=_auth(admin))
    assert resp.status_code == 200
    order = await seed.order(resp.json()["data"]["order_id"])
    assert order.delivery_fee == Decimal("0.00")
    assert order.total == Decimal("10.00")
