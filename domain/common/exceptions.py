"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。

Families:
- validation (400): recoverable locally, surfaced as a message, never retried
- authorization (403): wrong role or not the owner
- not found (404)
- gateway (500): payment provider failure, diagnostics preserved verbatim
- persistence (500): money may have moved without a matching local record
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.PARAM_ERROR,
        error_type: str = "ValidationError",
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            field=field,
        )


class EmptyCartException(DomainValidationException):
    def __init__(self):
        super().__init__(
            "Your cart is empty.",
            code=BusinessCode.EMPTY_CART,
            error_type="EmptyCart",
        )


class MissingDeliveryAddressException(DomainValidationException):
    def __init__(self):
        super().__init__(
            "Please provide a delivery address.",
            code=BusinessCode.MISSING_DELIVERY_ADDRESS,
            error_type="MissingDeliveryAddress",
            field="delivery_address",
        )


class InvalidQuantityException(DomainValidationException):
    def __init__(self, quantity):
        super().__init__(
            "Quantity must be at least 1.",
            error_type="InvalidQuantity",
            field="quantity",
            details={"quantity": quantity},
        )


class InvalidRefundReasonException(DomainValidationException):
    def __init__(self):
        super().__init__(
            "Refund reason is required.",
            error_type="InvalidRefundReason",
            field="reason",
        )


class InvalidRefundAmountException(DomainValidationException):
    def __init__(self, amount, message: str = "Invalid refund amount."):
        super().__init__(
            message,
            code=BusinessCode.INVALID_REFUND_AMOUNT,
            error_type="InvalidRefundAmount",
            field="amount",
            details={"amount": str(amount)},
        )


class RefundExceedsOrderTotalException(DomainValidationException):
    def __init__(self, amount: Decimal, order_total: Decimal):
        super().__init__(
            f"Refund amount {amount} exceeds order total {order_total}.",
            code=BusinessCode.INVALID_REFUND_AMOUNT,
            error_type="RefundExceedsOrderTotal",
            field="amount",
            details={"amount": str(amount), "order_total": str(order_total)},
        )


class RefundExceedsRemainingException(DomainValidationException):
    def __init__(self, amount: Decimal, remaining: Decimal):
        super().__init__(
            f"Refund amount {amount} exceeds the remaining refundable balance {remaining}.",
            code=BusinessCode.INVALID_REFUND_AMOUNT,
            error_type="RefundExceedsRemaining",
            field="amount",
            details={"amount": str(amount), "remaining": str(remaining)},
        )


class InvalidPaymentTransitionException(DomainValidationException):
    def __init__(self, order_id: Optional[int], current: str, attempted: str):
        super().__init__(
            f"Order payment status cannot move from {current} to {attempted}.",
            code=BusinessCode.INVALID_PAYMENT_TRANSITION,
            error_type="InvalidPaymentTransition",
            field="payment_status",
            details={"order_id": order_id, "current": current, "attempted": attempted},
        )


class CaptureReferenceConflictException(DomainValidationException):
    """扣款ID与台账已记录的扣款不一致，或已属于其他订单"""

    def __init__(self, order_id: Optional[int], reference: str, recorded: Optional[str] = None,
                 recorded_order_id: Optional[int] = None):
        super().__init__(
            "Capture reference does not match the capture recorded in the ledger.",
            code=BusinessCode.INVALID_PAYMENT_TRANSITION,
            error_type="CaptureReferenceConflict",
            field="reference",
            details={
                "order_id": order_id,
                "reference": reference,
                "recorded_reference": recorded,
                "recorded_order_id": recorded_order_id,
            },
        )


class CaptureAlreadyRecordedException(DomainValidationException):
    """同一扣款ID已被并发请求写入台账"""

    def __init__(self, capture_id: str):
        super().__init__(
            "This capture has already been recorded.",
            error_type="CaptureAlreadyRecorded",
            field="capture_id",
            details={"capture_id": capture_id},
        )


class InvalidRefundRequestTransitionException(DomainValidationException):
    def __init__(self, refund_request_id: Optional[int], current: str, attempted: str):
        super().__init__(
            f"Refund request cannot move from {current} to {attempted}.",
            error_type="InvalidRefundRequestTransition",
            field="status",
            details={"refund_request_id": refund_request_id, "current": current, "attempted": attempted},
        )


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------
class AuthorizationException(BusinessException):
    def __init__(self, message: str, *, error_type: str = "AuthorizationError", details: dict | None = None):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type=error_type,
            details=details,
        )


class ShopperRoleRequiredException(AuthorizationException):
    def __init__(self):
        super().__init__("Only shoppers can complete checkout.", error_type="ShopperRoleRequired")


class AdminRoleRequiredException(AuthorizationException):
    def __init__(self):
        super().__init__("Administrator access is required.", error_type="AdminRoleRequired")


class NotOrderOwnerException(AuthorizationException):
    def __init__(self, order_id: int):
        super().__init__(
            "You are not authorised to access this order.",
            error_type="NotOrderOwner",
            details={"order_id": order_id},
        )


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------
class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[str] = None):
        details = {"user_id": user_id} if user_id else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Order not found.",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class RefundRequestNotFoundException(BusinessException):
    def __init__(self, refund_request_id):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Refund request not found.",
            error_type="RefundRequestNotFound",
            details={"refund_request_id": refund_request_id},
        )


class ProductNotFoundException(BusinessException):
    def __init__(self, product_id):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Product not found.",
            error_type="ProductNotFound",
            details={"product_id": product_id},
        )


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------
class PaymentGatewayException(BusinessException):
    """Payment provider returned a non-success outcome or could not be reached.

    ``details`` carries the provider diagnostics (debug id, error name, raw
    details) untouched so support can triage with the provider.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        debug_id: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "PaymentGatewayError",
    ):
        full_details = {"provider": provider, "provider_code": provider_code, "debug_id": debug_id}
        if details:
            full_details.update(details)
        self.provider = provider
        self.debug_id = debug_id
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
        )


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
class PersistenceException(BusinessException):
    def __init__(self, message: str, *, error_type: str, details: dict | None = None):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message=message,
            error_type=error_type,
            details=details,
        )


class CheckoutFailedException(PersistenceException):
    def __init__(self, details: dict | None = None):
        super().__init__(
            "Unable to complete checkout. Please try again.",
            error_type="CheckoutFailed",
            details=details,
        )


class PaymentRecordFailedException(PersistenceException):
    """Gateway confirmed money movement but the local record could not be written."""

    def __init__(self, details: dict | None = None):
        super().__init__(
            "Payment was confirmed by the provider but could not be recorded. "
            "Support has been notified.",
            error_type="PaymentRecordFailed",
            details=details,
        )
