"""
Exceptions for payment providers mapped to the unified gateway error family.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import PaymentGatewayException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(PaymentGatewayException):
    """Provider answered with a non-2xx status (diagnostics kept verbatim)."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        debug_id: str | None = None,
        status_code: int | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            debug_id=debug_id,
            details=full_details,
            code=PaymentCode.PROVIDER_ERROR,
            error_type="PaymentProviderError",
        )
        self.status_code = status_code


class PaymentRecoverableError(PaymentGatewayException):
    """
    Transport failure; the request may or may not have reached the provider.

    Callers must not blindly replay money-moving requests on this error.
    """

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=details,
            code=PaymentCode.PROVIDER_RECOVERABLE,
            error_type="PaymentRecoverableError",
        )
