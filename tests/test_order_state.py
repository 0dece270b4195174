from decimal import Decimal

import pytest

from domain.common.exceptions import (
    CaptureReferenceConflictException,
    DomainValidationException,
    InvalidPaymentTransitionException,
    InvalidRefundAmountException,
    InvalidRefundReasonException,
    InvalidRefundRequestTransitionException,
    RefundExceedsOrderTotalException,
)
from domain.order.entity import Order, OrderItem
from domain.payment.entity import Payment, PaymentStatus, refunded_total
from domain.refund_request.entity import RefundRequest, RefundRequestStatus, parse_requested_amount


def _order(**kwargs):
    defaults = dict(
        id=1,
        user_id=1,
        total=Decimal("9.00"),
        delivery_method="pickup",
        delivery_address=None,
        delivery_fee=Decimal("0.00"),
    )
    defaults.update(kwargs)
    return Order(**defaults)


def test_mark_paid_is_idempotent_for_same_capture():
    order = _order()
    assert order.mark_paid("paypal", "CAP-1") is True
    assert order.payment_status == PaymentStatus.PAID
    assert order.mark_paid("paypal", "CAP-1") is False
    with pytest.raises(InvalidPaymentTransitionException):
        order.mark_paid("paypal", "CAP-2")


def test_unpaid_order_is_not_refundable():
    with pytest.raises(InvalidPaymentTransitionException):
        _order().ensure_refundable()


def test_paid_order_without_reference_is_not_refundable():
    order = _order(payment_status=PaymentStatus.PAID)
    with pytest.raises(DomainValidationException) as excinfo:
        order.ensure_refundable()
    assert excinfo.value.error_type == "MissingCaptureReference"


def test_refund_progression_partial_then_full():
    order = _order(payment_status="paid", payment_reference="CAP-1")
    assert order.apply_refunded_total(Decimal("4.00")) == PaymentStatus.PARTIALLY_REFUNDED
    assert order.apply_refunded_total(Decimal("9.00")) == PaymentStatus.REFUNDED
    with pytest.raises(InvalidPaymentTransitionException):
        order.apply_refunded_total(Decimal("9.00"))


def test_refunded_total_cannot_exceed_order_total():
    order = _order(payment_status="paid", payment_reference="CAP-1")
    with pytest.raises(DomainValidationException):
        order.apply_refunded_total(Decimal("9.01"))
    assert order.payment_status == PaymentStatus.PAID


def test_status_from_ledger_never_downgrades():
    refunded = _order(payment_status="refunded", payment_reference="CAP-1")
    assert refunded.status_from_ledger(True, Decimal("0")) == PaymentStatus.REFUNDED

    stale = _order(payment_status="paid", payment_reference="CAP-1")
    assert stale.status_from_ledger(True, Decimal("4.00")) == PaymentStatus.PARTIALLY_REFUNDED
    assert stale.status_from_ledger(True, Decimal("9.00")) == PaymentStatus.REFUNDED

    unpaid = _order()
    assert unpaid.status_from_ledger(True, Decimal("0")) == PaymentStatus.PAID
    assert unpaid.status_from_ledger(False, Decimal("0")) == PaymentStatus.UNPAID


def test_link_capture_reference_only_upgrades_unpaid():
    unpaid = _order()
    assert unpaid.link_capture_reference("CAP-9", "paypal") is True
    assert unpaid.payment_status == PaymentStatus.PAID

    refunded = _order(payment_status="refunded", payment_reference="OLD")
    assert refunded.link_capture_reference("CAP-9", "paypal") is False
    assert refunded.payment_status == PaymentStatus.REFUNDED
    assert refunded.payment_reference == "CAP-9"


def test_subtotal_excludes_delivery_fee():
    order = _order(total=Decimal("2.30"), delivery_fee=Decimal("1.50"), delivery_method="delivery")
    assert order.subtotal == Decimal("0.80")


def test_deleted_product_gets_placeholder_name():
    item = OrderItem(id=1, order_id=1, product_id=None, quantity=2, unit_price=Decimal("1.25"))
    assert item.is_deleted_product
    assert item.display_name == "Deleted product"
    assert item.line_total == Decimal("2.50")


def test_ledger_rows_reject_unpaid_and_negative():
    with pytest.raises(DomainValidationException):
        Payment(id=None, order_id=1, method="paypal", status=PaymentStatus.UNPAID, amount=Decimal("1"))
    with pytest.raises(DomainValidationException):
        Payment(id=None, order_id=1, method="paypal", status=PaymentStatus.PAID, amount=Decimal("-1"))


def test_refunded_total_sums_only_refund_rows():
    entries = [
        Payment(id=1, order_id=1, method="paypal", status=PaymentStatus.PAID, amount=Decimal("9.00")),
        Payment(id=2, order_id=1, method="paypal", status=PaymentStatus.PARTIALLY_REFUNDED, amount=Decimal("4.00")),
        Payment(id=3, order_id=1, method="paypal", status=PaymentStatus.REFUNDED, amount=Decimal("5.00")),
    ]
    assert refunded_total(entries) == Decimal("9.00")


def test_parse_requested_amount():
    total = Decimal("9.00")
    assert parse_requested_amount(None, total) is None
    assert parse_requested_amount("  ", total) is None
    assert parse_requested_amount("4.005", total) == Decimal("4.01")
    with pytest.raises(InvalidRefundAmountException):
        parse_requested_amount("0", total)
    with pytest.raises(InvalidRefundAmountException):
        parse_requested_amount("abc", total)
    with pytest.raises(RefundExceedsOrderTotalException):
        parse_requested_amount("12.00", total)


def test_refund_request_moderation_and_execution():
    request = RefundRequest(id=1, order_id=1, user_id=1, reason="  broken  ")
    assert request.reason == "broken"
    request.approve("ok")
    assert request.status == RefundRequestStatus.APPROVED
    with pytest.raises(InvalidRefundRequestTransitionException):
        request.deny()

    request.record_refund(Decimal("4.00"), fully_refunded=False)
    assert request.status == RefundRequestStatus.PARTIALLY_REFUNDED
    request.record_refund(Decimal("5.00"), fully_refunded=True, admin_note="done")
    assert request.status == RefundRequestStatus.REFUNDED
    assert request.refunded_amount == Decimal("9.00")
    assert request.admin_note == "done"


def test_denied_request_cannot_be_executed():
    request = RefundRequest(id=1, order_id=1, user_id=1, reason="late")
    request.deny("  ")
    assert request.admin_note is None
    with pytest.raises(InvalidRefundRequestTransitionException):
        request.ensure_executable()


def test_blank_reason_is_rejected():
    with pytest.raises(InvalidRefundReasonException):
        RefundRequest(id=None, order_id=1, user_id=1, reason="   ")


def test_link_capture_reference_must_match_recorded_capture():
    paid = _order(payment_status="paid", payment_reference="CAP-1")
    with pytest.raises(CaptureReferenceConflictException) as excinfo:
        paid.link_capture_reference("CAP-OTHER", "paypal", recorded_reference="CAP-1")
    assert excinfo.value.details["recorded_reference"] == "CAP-1"
    assert paid.payment_reference == "CAP-1"

    assert paid.link_capture_reference("CAP-1", "paypal", recorded_reference="CAP-1") is False
