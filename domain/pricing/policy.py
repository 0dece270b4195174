"""
Money and pricing policy - pure functions, no state, no IO.

All amounts are ``Decimal`` rounded to whole cents with ROUND_HALF_UP, which
for ``Decimal`` rounds halves away from zero.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

DELIVERY_FEE = Decimal("1.50")
ADDRESS_MAX_LENGTH = 255

PICKUP = "pickup"
DELIVERY = "delivery"


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not d.is_finite():
        return None
    return d


def round_money(value: Decimal | int | str) -> Decimal:
    """Round to 2 decimal places, halves away from zero."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_price(value: Any) -> Decimal:
    """Negative, non-finite or unparseable input becomes 0.00."""
    d = _to_decimal(value)
    if d is None or d < 0:
        return ZERO
    return round_money(d)


def clamp_discount(discount_percent: Any) -> Decimal:
    d = _to_decimal(discount_percent)
    if d is None:
        return Decimal("0")
    return min(HUNDRED, max(Decimal("0"), d))


def has_discount(discount_percent: Any) -> bool:
    return clamp_discount(discount_percent) > 0


def effective_price(base: Any, discount_percent: Any) -> Decimal:
    base_price = normalize_price(base)
    discount = clamp_discount(discount_percent)
    if discount == 0:
        return base_price
    return normalize_price(base_price * (1 - discount / HUNDRED))


@dataclass(frozen=True)
class ProductPricing:
    price: Decimal
    discount_percent: Decimal
    effective_price: Decimal
    has_discount: bool
    offer_message: Optional[str] = None


def price_product(base: Any, discount_percent: Any, offer_message: Optional[str] = None) -> ProductPricing:
    """Original and discounted price side by side, for strike-through display."""
    discount = clamp_discount(discount_percent)
    message = str(offer_message).strip() if offer_message else None
    return ProductPricing(
        price=normalize_price(base),
        discount_percent=discount,
        effective_price=effective_price(base, discount),
        has_discount=discount > 0,
        offer_message=message or None,
    )


def normalize_delivery_method(value: Any) -> str:
    # anything other than the literal token falls back to pickup
    return DELIVERY if value == DELIVERY else PICKUP


def delivery_fee(
    delivery_method: str,
    waived: bool = False,
    user_has_free_delivery: bool = False,
    *,
    fee: Decimal = DELIVERY_FEE,
) -> Decimal:
    if delivery_method != DELIVERY or waived or user_has_free_delivery:
        return ZERO
    return round_money(fee)


def sanitize_delivery_address(value: Optional[str], max_length: int = ADDRESS_MAX_LENGTH) -> Optional[str]:
    if not value:
        return None
    trimmed = str(value).strip()
    return trimmed[:max_length] if trimmed else None


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return round_money(unit_price * quantity)
