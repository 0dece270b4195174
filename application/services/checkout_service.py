"""
结算上下文构建

``build_checkout_context`` is pure: it only looks at its arguments (plus the
checkout settings for fee and address limits), so it can be called again
with the same inputs at capture time and produce an equal context.
"""
from decimal import Decimal
from typing import Callable, Iterable, Optional

from application.dtos.checkout import CheckoutContext, CheckoutLine
from application.services.cart_service import CartService
from core.config import settings
from domain.cart.entity import PricedCartLine
from domain.common.exceptions import (
    EmptyCartException,
    MissingDeliveryAddressException,
    ShopperRoleRequiredException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.pricing.policy import (
    DELIVERY,
    ZERO,
    delivery_fee,
    line_total,
    normalize_delivery_method,
    round_money,
    sanitize_delivery_address,
)
from domain.user.entity import Customer


def build_checkout_context(
    customer: Customer,
    cart_snapshot: Iterable[PricedCartLine],
    delivery_method_input: Optional[str],
    delivery_address_input: Optional[str],
    *,
    waive_fee: bool = False,
    fee: Optional[Decimal] = None,
    address_max_length: Optional[int] = None,
) -> CheckoutContext:
    if not customer.is_shopper:
        raise ShopperRoleRequiredException()

    lines = list(cart_snapshot)
    if not lines:
        raise EmptyCartException()

    max_length = address_max_length or settings.checkout.address_max_length
    method = normalize_delivery_method(delivery_method_input)

    address = None
    if method == DELIVERY:
        address = (
            sanitize_delivery_address(delivery_address_input, max_length)
            or sanitize_delivery_address(customer.address, max_length)
        )
        if not address:
            raise MissingDeliveryAddressException()

    checkout_lines = tuple(
        CheckoutLine(
            product_id=line.product_id,
            product_name=line.product_name,
            unit_price=line.unit_price,
            effective_price=line.effective_price,
            quantity=line.quantity,
            line_total=line_total(line.effective_price, line.quantity),
        )
        for line in lines
    )
    subtotal = round_money(sum((line.line_total for line in checkout_lines), ZERO))
    fee_amount = delivery_fee(
        method,
        waived=waive_fee,
        user_has_free_delivery=customer.free_delivery,
        fee=settings.checkout.delivery_fee if fee is None else fee,
    )

    return CheckoutContext(
        line_items=checkout_lines,
        delivery_method=method,
        delivery_address=address,
        delivery_fee=fee_amount,
        subtotal=subtotal,
        total=round_money(subtotal + fee_amount),
    )


class CheckoutService:
    """结算预览：读取最新购物车并计算金额（不落库）"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._cart_service = CartService(uow_factory)

    async def preview(
        self,
        customer: Customer,
        delivery_method: Optional[str],
        delivery_address: Optional[str],
    ) -> CheckoutContext:
        if not customer.is_shopper:
            raise ShopperRoleRequiredException()
        snapshot = await self._cart_service.load_snapshot(customer.id)
        return build_checkout_context(customer, snapshot, delivery_method, delivery_address)
