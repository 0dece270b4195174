"""
订单工厂 - 把结算上下文原子地落为订单

Header, items, the optional capture ledger row and the cart clear share one
transaction. The cart clear runs inside a savepoint: if it fails only the
savepoint rolls back and the order still commits. Any other storage failure
leaves zero rows behind.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from application.dtos.checkout import CheckoutContext, OrderCreated
from core.logging_config import get_logger
from domain.common.exceptions import (
    CaptureAlreadyRecordedException,
    CheckoutFailedException,
    EmptyCartException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderItem
from domain.payment.entity import Payment, PaymentStatus


logger = get_logger(__name__)


@dataclass(frozen=True)
class ConfirmedCapture:
    """网关已确认的扣款，随订单一起入账"""
    method: str
    reference: str
    amount: Decimal
    payload: dict = field(default_factory=dict)


class OrderFactory:

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def create_order(
        self,
        user_id: int,
        context: CheckoutContext,
        *,
        capture: Optional[ConfirmedCapture] = None,
    ) -> OrderCreated:
        """
        生成订单；传入 ``capture`` 时订单以 paid 状态落库

        The capture row is unique per provider reference, so a concurrent
        request that already recorded the same capture makes this one roll back
        entirely and raise ``CaptureAlreadyRecordedException``.
        """
        appending_capture = False
        try:
            async with self._uow_factory() as uow:
                # 购物车可能在预览之后被其他请求清空
                if await uow.cart_repository.count_lines(user_id) == 0:
                    raise EmptyCartException()

                order = await uow.order_repository.create(
                    Order(
                        id=None,
                        user_id=user_id,
                        total=context.total,
                        delivery_method=context.delivery_method,
                        delivery_address=context.delivery_address,
                        delivery_fee=context.delivery_fee,
                        payment_status=PaymentStatus.UNPAID,
                    )
                )
                await uow.order_repository.add_items(
                    order.id,
                    [
                        OrderItem(
                            id=None,
                            order_id=order.id,
                            product_id=line.product_id,
                            quantity=line.quantity,
                            unit_price=line.effective_price,
                        )
                        for line in context.line_items
                    ],
                )

                if capture is not None:
                    order.mark_paid(capture.method, capture.reference)
                    appending_capture = True
                    await uow.payment_repository.append(
                        Payment(
                            id=None,
                            order_id=order.id,
                            method=capture.method,
                            status=PaymentStatus.PAID,
                            amount=capture.amount,
                            provider_reference=capture.reference,
                            payload=capture.payload,
                        )
                    )
                    appending_capture = False
                    order = await uow.order_repository.update_payment_cache(order)

                try:
                    async with uow.savepoint():
                        await uow.cart_repository.clear(user_id)
                except SQLAlchemyError as exc:
                    logger.warning("cart_clear_failed", user_id=user_id, order_id=order.id, error=str(exc))
        except IntegrityError as exc:
            if appending_capture:
                logger.info("capture_already_recorded", user_id=user_id, capture_id=capture.reference)
                raise CaptureAlreadyRecordedException(capture.reference) from exc
            self._log_failure(user_id, context, exc)
            raise CheckoutFailedException(details={"user_id": user_id}) from exc
        except SQLAlchemyError as exc:
            self._log_failure(user_id, context, exc)
            raise CheckoutFailedException(details={"user_id": user_id}) from exc

        logger.info(
            "order_placed",
            order_id=order.id,
            user_id=user_id,
            total=str(context.total),
            delivery_method=context.delivery_method,
            payment_status=order.payment_status.value,
        )
        return OrderCreated(order_id=order.id)

    @staticmethod
    def _log_failure(user_id: int, context: CheckoutContext, exc: SQLAlchemyError) -> None:
        logger.error(
            "checkout_failed",
            user_id=user_id,
            total=str(context.total),
            line_count=len(context.line_items),
            error=str(exc),
            exc_info=True,
        )
