from decimal import Decimal

import pytest

from application.services.refund_request_service import RefundRequestService
from domain.common.exceptions import (
    AdminRoleRequiredException,
    InvalidRefundAmountException,
    InvalidRefundReasonException,
    InvalidRefundRequestTransitionException,
    NotOrderOwnerException,
    OrderNotFoundException,
    RefundExceedsOrderTotalException,
    RefundRequestNotFoundException,
)


@pytest.fixture
def requests(uow_factory):
    return RefundRequestService(uow_factory)


@pytest.mark.asyncio
async def test_owner_submits_full_refund_request(paid_order, requests):
    shopper, order_id = await paid_order()

    created = await requests.submit(shopper, order_id, "  Wrong size  ", amount="")

    assert created.status == "requested"
    assert created.reason == "Wrong size"
    assert created.requested_amount is None
    assert created.user_id == shopper.id


@pytest.mark.asyncio
async def test_submission_validation(paid_order, seed, requests):
    shopper, order_id = await paid_order(price="9.00")
    stranger = await seed.customer()

    with pytest.raises(RefundExceedsOrderTotalException):
        await requests.submit(shopper, order_id, "Too expensive", "12.00")
    with pytest.raises(InvalidRefundAmountException):
        await requests.submit(shopper, order_id, "Zero", "0")
    with pytest.raises(InvalidRefundReasonException):
        await requests.submit(shopper, order_id, "   ")
    with pytest.raises(NotOrderOwnerException):
        await requests.submit(stranger, order_id, "Not mine")
    with pytest.raises(OrderNotFoundException):
        await requests.submit(shopper, 123456, "Missing")


@pytest.mark.asyncio
async def test_moderation_is_admin_only_and_one_way(paid_order, seed, requests):
    shopper, order_id = await paid_order()
    admin = await seed.admin()
    created = await requests.submit(shopper, order_id, "Late delivery", "2.50")

    with pytest.raises(AdminRoleRequiredException):
        await requests.approve(shopper, created.id)

    denied = await requests.deny(admin, created.id, "  Delivered on time  ")
    assert denied.status == "denied"
    assert denied.admin_note == "Delivered on time"

    with pytest.raises(InvalidRefundRequestTransitionException):
        await requests.approve(admin, created.id)
    with pytest.raises(RefundRequestNotFoundException):
        await requests.approve(admin, 999)


@pytest.mark.asyncio
async def test_listings(paid_order, seed, requests):
    shopper, first_order = await paid_order(capture_id="CAP-1")
    _, second_order = await paid_order(capture_id="CAP-2", shopper=shopper)
    other, other_order = await paid_order(capture_id="CAP-3")
    admin = await seed.admin()

    older = await requests.submit(shopper, first_order, "First")
    newer = await requests.submit(shopper, second_order, "Second", "1.00")
    await requests.submit(other, other_order, "Other")

    mine = await requests.list_for_customer(shopper)
    assert [r.id for r in mine] == [newer.id, older.id]

    rows = await requests.list_all(admin)
    assert len(rows) == 3
    row = next(r for r in rows if r.request.id == newer.id)
    assert row.order_total == Decimal("9.00")
    assert row.order_payment_status == "paid"
    assert row.capture_reference == "CAP-2"
    assert row.username == shopper.username

    with pytest.raises(AdminRoleRequiredException):
        await requests.list_all(shopper)
