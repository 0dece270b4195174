import asyncio
from decimal import Decimal

import pytest

from application.services import payment_service as payment_module
from application.services.payment_service import PaymentService
from domain.common.exceptions import (
    AdminRoleRequiredException,
    EmptyCartException,
    PaymentGatewayException,
    PaymentRecordFailedException,
    ShopperRoleRequiredException,
    UserNotFoundException,
)
from domain.payment.entity import PaymentStatus
from infrastructure.models import CartModel, OrderModel, PaymentModel


@pytest.fixture
def incidents(monkeypatch):
    recorded = []

    def fake_incident(logger, reason, **identifiers):
        recorded.append({"reason": reason, **identifiers})

    monkeypatch.setattr(payment_module, "log_payment_incident", fake_incident)
    return recorded


async def _shopper_with_cart(seed, price="9.00", quantity=1):
    shopper = await seed.customer(address="8 Marina View")
    product_id = await seed.product(price=price)
    await seed.cart(shopper.id, product_id, quantity)
    return shopper, product_id


@pytest.mark.asyncio
async def test_start_payment_creates_gateway_order_without_local_rows(uow_factory, seed, gateway):
    shopper, _ = await _shopper_with_cart(seed, price="0.80")
    service = PaymentService(uow_factory, gateway=gateway)

    gateway_order = await service.start_payment(shopper, "delivery", None)

    assert gateway_order.id == "GW-ORDER-1"
    assert gateway_order.approve_url
    assert gateway.calls_named("create_order") == [("create_order", "2.30", None)]
    assert await seed.count(OrderModel) == 0


@pytest.mark.asyncio
async def test_start_payment_with_empty_cart_never_calls_gateway(uow_factory, seed, gateway):
    shopper = await seed.customer()
    with pytest.raises(EmptyCartException):
        await PaymentService(uow_factory, gateway=gateway).start_payment(shopper)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_capture_creates_paid_order_with_ledger_row(uow_factory, seed, gateway):
    shopper, _ = await _shopper_with_cart(seed)
    service = PaymentService(uow_factory, gateway=gateway)

    outcome = await service.capture_payment(shopper, "GW-ORDER-1")

    assert outcome.payment_status == "paid"
    assert outcome.payment_reference == "CAP-1"
    assert outcome.already_recorded is False
    ledger = await seed.ledger(outcome.order_id)
    assert [(e.status, e.amount, e.provider_reference) for e in ledger] == [
        (PaymentStatus.PAID, Decimal("9.00"), "CAP-1"),
    ]
    assert await seed.count(CartModel) == 0

    (_, gateway_order_id, key), = gateway.calls_named("capture_order")
    assert gateway_order_id == "GW-ORDER-1"
    assert key == payment_module._ensure_idempotency_key("capture", "paypal", "GW-ORDER-1")


@pytest.mark.asyncio
async def test_duplicate_capture_returns_existing_order(uow_factory, seed, gateway):
    shopper, product_id = await _shopper_with_cart(seed)
    service = PaymentService(uow_factory, gateway=gateway)
    first = await service.capture_payment(shopper, "GW-ORDER-1")

    # 重新加购后重复回调也不应生成第二个订单
    await seed.cart(shopper.id, product_id, 1)
    second = await service.capture_payment(shopper, "GW-ORDER-1")

    assert second.already_recorded is True
    assert second.order_id == first.order_id
    assert await seed.count(OrderModel) == 1
    assert await seed.count(PaymentModel) == 1


@pytest.mark.asyncio
async def test_capture_not_completed_creates_nothing(uow_factory, seed, gateway):
    shopper, _ = await _shopper_with_cart(seed)
    gateway.capture_status = "PAYER_ACTION_REQUIRED"

    with pytest.raises(PaymentGatewayException) as excinfo:
        await PaymentService(uow_factory, gateway=gateway).capture_payment(shopper, "GW-ORDER-1")

    assert excinfo.value.details["provider_code"] == "PAYER_ACTION_REQUIRED"
    assert await seed.count(OrderModel) == 0
    assert await seed.count(CartModel) == 1


@pytest.mark.asyncio
async def test_capture_without_capture_id_uses_gateway_order_id(uow_factory, seed, gateway):
    shopper, _ = await _shopper_with_cart(seed)
    gateway.capture_ids = []

    outcome = await PaymentService(uow_factory, gateway=gateway).capture_payment(shopper, "GW-ORDER-7")

    assert outcome.payment_reference == "GW-ORDER-7"


@pytest.mark.asyncio
async def test_ledger_records_amount_confirmed_by_gateway(uow_factory, seed, gateway):
    shopper, _ = await _shopper_with_cart(seed)
    gateway.capture_amount = Decimal("8.5")

    outcome = await PaymentService(uow_factory, gateway=gateway).capture_payment(shopper, "GW-ORDER-1")

    ledger = await seed.ledger(outcome.order_id)
    assert ledger[0].amount == Decimal("8.50")
    assert (await seed.order(outcome.order_id)).total == Decimal("9.00")


@pytest.mark.asyncio
async def test_confirmed_capture_that_cannot_be_recorded_is_an_incident(uow_factory, seed, gateway, incidents):
    shopper = await seed.customer()

    with pytest.raises(PaymentRecordFailedException) as excinfo:
        await PaymentService(uow_factory, gateway=gateway).capture_payment(shopper, "GW-ORDER-1")

    assert excinfo.value.details["capture_id"] == "CAP-1"
    assert incidents and incidents[0]["reason"] == "capture_not_recorded"
    assert incidents[0]["gateway_order_id"] == "GW-ORDER-1"
    assert incidents[0]["error_type"] == "EmptyCart"
    assert await seed.count(OrderModel) == 0


@pytest.mark.asyncio
async def test_admin_cannot_capture(uow_factory, seed, gateway):
    admin = await seed.admin()
    with pytest.raises(ShopperRoleRequiredException):
        await PaymentService(uow_factory, gateway=gateway).capture_payment(admin, "GW-ORDER-1")
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_pay_later_creates_unpaid_order_without_ledger(uow_factory, seed):
    shopper, _ = await _shopper_with_cart(seed, price="1.50", quantity=5)

    created = await PaymentService(uow_factory).checkout_without_payment(shopper, "pickup", None)

    order = await seed.order(created.order_id)
    assert order.total == Decimal("7.50")
    assert order.payment_status == PaymentStatus.UNPAID
    assert await seed.ledger(created.order_id) == []


@pytest.mark.asyncio
async def test_service_without_gateway_refuses_gateway_work(uow_factory, seed):
    shopper, _ = await _shopper_with_cart(seed)
    with pytest.raises(RuntimeError):
        await PaymentService(uow_factory).start_payment(shopper)


@pytest.mark.asyncio
async def test_concurrent_captures_of_one_gateway_order_record_it_once(uow_factory, seed, gateway, incidents):
    shopper, _ = await _shopper_with_cart(seed)
    service = PaymentService(uow_factory, gateway=gateway)

    first, second = await asyncio.gather(
        service.capture_payment(shopper, "GW-ORDER-1"),
        service.capture_payment(shopper, "GW-ORDER-1"),
    )

    assert sorted([first.already_recorded, second.already_recorded]) == [False, True]
    assert first.order_id == second.order_id
    assert await seed.count(OrderModel) == 1
    assert [e.provider_reference for e in await seed.ledger(first.order_id)] == ["CAP-1"]
    assert incidents == []


@pytest.mark.asyncio
async def test_capture_losing_the_unique_index_race_rolls_back_its_order(
    uow_factory, seed, gateway, incidents, monkeypatch
):
    shopper, product_id = await _shopper_with_cart(seed)
    service = PaymentService(uow_factory, gateway=gateway)
    first = await service.capture_payment(shopper, "GW-ORDER-1")
    await seed.cart(shopper.id, product_id, 1)

    # 模拟并发：重复检查发生在对方提交之前
    lookups = iter([None])
    real_lookup = PaymentService._recorded_capture

    async def racing_lookup(self, capture_id, gateway_status):
        if next(lookups, "real") is None:
            return None
        return await real_lookup(self, capture_id, gateway_status)

    monkeypatch.setattr(PaymentService, "_recorded_capture", racing_lookup)
    second = await service.capture_payment(shopper, "GW-ORDER-1")

    assert second.already_recorded is True
    assert second.order_id == first.order_id
    assert await seed.count(OrderModel) == 1
    assert await seed.count(PaymentModel) == 1
    assert await seed.count(CartModel) == 1
    assert incidents == []


@pytest.mark.asyncio
async def test_admin_checkout_on_behalf_can_waive_delivery_fee(uow_factory, seed):
    admin = await seed.admin()
    shopper, product_id = await _shopper_with_cart(seed, price="3.00")
    service = PaymentService(uow_factory)

    with pytest.raises(AdminRoleRequiredException):
        await service.checkout_on_behalf(shopper, shopper.id, "delivery", waive_fee=True)
    created = await service.checkout_on_behalf(admin, shopper.id, "delivery", waive_fee=True)

    order = await seed.order(created.order_id)
    assert order.delivery_fee == Decimal("0.00")
    assert order.total == Decimal("3.00")
    assert order.delivery_address == "8 Marina View"
    assert order.payment_status == PaymentStatus.UNPAID

    await seed.cart(shopper.id, product_id, 1)
    charged = await service.checkout_on_behalf(admin, shopper.id, "delivery")
    assert (await seed.order(charged.order_id)).total == Decimal("4.50")


@pytest.mark.asyncio
async def test_admin_checkout_on_behalf_requires_a_shopper_account(uow_factory, seed):
    admin = await seed.admin()
    service = PaymentService(uow_factory)

    with pytest.raises(UserNotFoundException):
        await service.checkout_on_behalf(admin, 999)
    with pytest.raises(ShopperRoleRequiredException):
        await service.checkout_on_behalf(admin, admin.id)
