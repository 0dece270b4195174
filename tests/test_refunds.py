from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from application.services import payment_service as payment_module
from application.services.payment_service import PaymentService
from application.services.refund_request_service import RefundRequestService
from domain.common.exceptions import (
    AdminRoleRequiredException,
    DomainValidationException,
    InvalidPaymentTransitionException,
    InvalidRefundAmountException,
    InvalidRefundRequestTransitionException,
    OrderNotFoundException,
    PaymentGatewayException,
    PaymentRecordFailedException,
    RefundExceedsOrderTotalException,
    RefundExceedsRemainingException,
    RefundRequestNotFoundException,
)
from domain.payment.entity import PaymentStatus
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository


def _refund_rows(ledger):
    return [(e.status, e.amount) for e in ledger if e.is_refund]


@pytest.fixture
async def admin(seed):
    return await seed.admin()


@pytest.fixture
def service(uow_factory, gateway):
    return PaymentService(uow_factory, gateway=gateway)


@pytest.mark.asyncio
async def test_refund_above_order_total_is_rejected_before_gateway(paid_order, admin, service, gateway):
    _, order_id = await paid_order(price="9.00")

    with pytest.raises(RefundExceedsOrderTotalException) as excinfo:
        await service.refund_order(admin, order_id, amount="12.00")

    assert isinstance(excinfo.value, DomainValidationException)
    assert gateway.calls_named("refund_capture") == []


@pytest.mark.asyncio
async def test_full_refund_marks_order_refunded(paid_order, admin, service, gateway, seed):
    _, order_id = await paid_order(price="9.00")

    outcome = await service.refund_order(admin, order_id, amount="9.00")

    assert outcome.payment_status == "refunded"
    assert outcome.refunded_total == Decimal("9.00")
    assert _refund_rows(await seed.ledger(order_id)) == [(PaymentStatus.REFUNDED, Decimal("9.00"))]
    (_, reference, amount, key), = gateway.calls_named("refund_capture")
    assert (reference, amount) == ("CAP-1", "9.00")
    assert len(key) == 64


@pytest.mark.asyncio
async def test_partial_then_remaining_refund(paid_order, admin, service, gateway, seed):
    _, order_id = await paid_order(price="9.00")

    first = await service.refund_order(admin, order_id, amount="4.00")
    assert first.payment_status == "partially_refunded"
    assert first.refunded_total == Decimal("4.00")

    second = await service.refund_order(admin, order_id, amount="5.00")
    assert second.payment_status == "refunded"
    assert second.refunded_total == Decimal("9.00")

    assert _refund_rows(await seed.ledger(order_id)) == [
        (PaymentStatus.PARTIALLY_REFUNDED, Decimal("4.00")),
        (PaymentStatus.REFUNDED, Decimal("5.00")),
    ]
    keys = [call[3] for call in gateway.calls_named("refund_capture")]
    assert keys[0] != keys[1]

    with pytest.raises(InvalidPaymentTransitionException):
        await service.refund_order(admin, order_id, amount="1.00")


@pytest.mark.asyncio
async def test_first_refund_without_amount_refunds_whole_capture(paid_order, admin, service, gateway):
    _, order_id = await paid_order(price="9.00")

    outcome = await service.refund_order(admin, order_id)

    assert outcome.payment_status == "refunded"
    assert gateway.calls_named("refund_capture")[0][2] is None


@pytest.mark.asyncio
async def test_refund_without_amount_after_partial_sends_remaining(paid_order, admin, service, gateway):
    _, order_id = await paid_order(price="9.00")
    await service.refund_order(admin, order_id, amount="4.00")

    outcome = await service.refund_order(admin, order_id, amount="")

    assert outcome.payment_status == "refunded"
    assert gateway.calls_named("refund_capture")[1][2] == "5.00"


@pytest.mark.asyncio
async def test_refund_above_remaining_is_rejected(paid_order, admin, service, gateway):
    _, order_id = await paid_order(price="9.00")
    await service.refund_order(admin, order_id, amount="4.00")

    with pytest.raises(RefundExceedsRemainingException):
        await service.refund_order(admin, order_id, amount="6.00")
    assert len(gateway.calls_named("refund_capture")) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-3", "abc", Decimal("0.00")])
async def test_non_positive_or_garbage_amount_is_rejected(paid_order, admin, service, gateway, amount):
    _, order_id = await paid_order()
    with pytest.raises(InvalidRefundAmountException):
        await service.refund_order(admin, order_id, amount=amount)
    assert gateway.calls_named("refund_capture") == []


@pytest.mark.asyncio
async def test_unpaid_order_cannot_be_refunded(uow_factory, seed, admin, service, gateway):
    shopper = await seed.customer()
    product_id = await seed.product()
    await seed.cart(shopper.id, product_id, 1)
    created = await PaymentService(uow_factory).checkout_without_payment(shopper)

    with pytest.raises(InvalidPaymentTransitionException):
        await service.refund_order(admin, created.order_id)
    assert gateway.calls_named("refund_capture") == []


@pytest.mark.asyncio
async def test_refund_requires_admin_and_existing_order(paid_order, admin, service):
    shopper, order_id = await paid_order()
    with pytest.raises(AdminRoleRequiredException):
        await service.refund_order(shopper, order_id)
    with pytest.raises(OrderNotFoundException):
        await service.refund_order(admin, 987654)


@pytest.mark.asyncio
async def test_gateway_rejection_changes_nothing(paid_order, admin, service, gateway, seed):
    _, order_id = await paid_order()
    gateway.refund_status = "FAILED"

    with pytest.raises(PaymentGatewayException) as excinfo:
        await service.refund_order(admin, order_id, amount="4.00")

    assert excinfo.value.debug_id == "dbg-1"
    assert (await seed.order(order_id)).payment_status == PaymentStatus.PAID
    assert _refund_rows(await seed.ledger(order_id)) == []


@pytest.mark.asyncio
async def test_pending_refund_counts_as_confirmed(paid_order, admin, service):
    _, order_id = await paid_order()
    service.gateway.refund_status = "PENDING"

    outcome = await service.refund_order(admin, order_id, amount="4.00")
    assert outcome.payment_status == "partially_refunded"


@pytest.mark.asyncio
async def test_gateway_confirming_more_than_remaining_is_capped(paid_order, admin, service, gateway, seed):
    _, order_id = await paid_order(price="9.00")
    gateway.refund_amount = Decimal("20.00")

    outcome = await service.refund_order(admin, order_id, amount="4.00")

    assert outcome.payment_status == "refunded"
    assert _refund_rows(await seed.ledger(order_id)) == [(PaymentStatus.REFUNDED, Decimal("9.00"))]


@pytest.mark.asyncio
async def test_confirmed_refund_that_cannot_be_recorded_is_an_incident(
    paid_order, admin, service, seed, monkeypatch
):
    _, order_id = await paid_order()
    recorded = []
    monkeypatch.setattr(
        payment_module, "log_payment_incident", lambda logger, reason, **ids: recorded.append((reason, ids))
    )

    async def fail_append(self, payment):
        raise SQLAlchemyError("connection reset")

    monkeypatch.setattr(SQLAlchemyPaymentRepository, "append", fail_append)

    with pytest.raises(PaymentRecordFailedException):
        await service.refund_order(admin, order_id, amount="4.00")

    (reason, ids), = recorded
    assert reason == "refund_not_recorded"
    assert ids["refund_id"] == "REF-1"
    assert ids["capture_reference"] == "CAP-1"
    assert (await seed.order(order_id)).payment_status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_refund_linked_to_request_updates_the_request(uow_factory, paid_order, admin, service):
    shopper, order_id = await paid_order(price="9.00")
    requests = RefundRequestService(uow_factory)
    request = await requests.submit(shopper, order_id, "Item arrived damaged", "4.00")
    await requests.approve(admin, request.id, "Approved, partial")

    await service.refund_order(admin, order_id, amount="4.00", refund_request_id=request.id)
    (after_partial,) = await requests.list_for_customer(shopper)
    assert after_partial.status == "partially_refunded"
    assert after_partial.refunded_amount == Decimal("4.00")

    await service.refund_order(admin, order_id, refund_request_id=request.id, admin_note="Rest refunded")
    (after_full,) = await requests.list_for_customer(shopper)
    assert after_full.status == "refunded"
    assert after_full.refunded_amount == Decimal("9.00")
    assert after_full.admin_note == "Rest refunded"


@pytest.mark.asyncio
async def test_denied_or_foreign_request_blocks_refund(uow_factory, paid_order, admin, service, gateway):
    shopper, order_id = await paid_order(capture_id="CAP-A")
    _, other_order_id = await paid_order(capture_id="CAP-B")
    requests = RefundRequestService(uow_factory)
    request = await requests.submit(shopper, order_id, "Changed my mind")
    await requests.deny(admin, request.id, "Outside the return window")

    with pytest.raises(InvalidRefundRequestTransitionException):
        await service.refund_order(admin, order_id, refund_request_id=request.id)
    with pytest.raises(RefundRequestNotFoundException):
        await service.refund_order(admin, other_order_id, refund_request_id=request.id)
    assert gateway.calls_named("refund_capture") == []
