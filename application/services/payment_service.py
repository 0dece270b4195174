"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentGateway port and DTOs.
Gateway implementations are provided by infrastructure and must be injected
from the composition root (API/tasks), keeping dependencies one-way.

Money-moving workflows follow the same shape: validate locally, call the
gateway, then write the ledger row (flushed first) and the order cache in one
transaction. Once the gateway has confirmed, a local failure is never
retried against the gateway; it becomes a ``payment_incident``.
"""
from __future__ import annotations

import asyncio
import hashlib
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from application.dtos.checkout import CheckoutContext, OrderCreated
from application.dtos.payments import GatewayOrder, PaymentOutcomeDTO
from application.ports.payment_gateway import PaymentGateway
from application.services.cart_service import CartService
from application.services.checkout_service import build_checkout_context
from application.services.order_factory import ConfirmedCapture, OrderFactory
from core.logging_config import get_logger, log_payment_incident
from domain.common.exceptions import (
    AdminRoleRequiredException,
    BusinessException,
    CaptureAlreadyRecordedException,
    CaptureReferenceConflictException,
    CheckoutFailedException,
    DomainValidationException,
    EmptyCartException,
    InvalidPaymentTransitionException,
    InvalidRefundAmountException,
    OrderNotFoundException,
    PaymentGatewayException,
    PaymentRecordFailedException,
    RefundExceedsOrderTotalException,
    RefundExceedsRemainingException,
    RefundRequestNotFoundException,
    ShopperRoleRequiredException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.payment.entity import Payment, PaymentStatus, refunded_total
from domain.pricing.policy import ZERO, _to_decimal, round_money
from domain.user.entity import Customer
from shared.codes.payment_codes import CAPTURE_CONFIRMED_STATUSES, REFUND_CONFIRMED_STATUSES


logger = get_logger(__name__)

# 落库阶段遇到锁竞争时的重试次数（不会重复调用网关）
_RECORD_ATTEMPTS = 4


def _ensure_idempotency_key(op: str, *parts: object) -> str:
    # Stable, reproducible key derived from business identifiers (no timestamp)
    base = "|".join([op, *("" if p is None else str(p) for p in parts)])
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def _is_transient_storage_error(exc: BaseException) -> bool:
    cause = exc.__cause__ if isinstance(exc, CheckoutFailedException) else exc
    return isinstance(cause, OperationalError)


def _outcome(order: Order, refunded: Decimal, **extra) -> PaymentOutcomeDTO:
    return PaymentOutcomeDTO(
        order_id=order.id,
        payment_status=order.payment_status.value,
        payment_reference=order.payment_reference,
        refunded_total=refunded,
        **extra,
    )


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: Optional[PaymentGateway] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._cart_service = CartService(uow_factory)
        self._order_factory = OrderFactory(uow_factory)

    @property
    def gateway(self) -> PaymentGateway:
        # 对账等纯本地操作不需要网关
        if self._gateway is None:
            raise RuntimeError("No payment gateway configured for this service")
        return self._gateway

    # ------------------------------------------------------------------
    # checkout
    # ------------------------------------------------------------------
    async def _build_context(
        self,
        customer: Customer,
        delivery_method: Optional[str],
        delivery_address: Optional[str],
        *,
        waive_fee: bool = False,
    ) -> CheckoutContext:
        if not customer.is_shopper:
            raise ShopperRoleRequiredException()
        snapshot = await self._cart_service.load_snapshot(customer.id)
        return build_checkout_context(customer, snapshot, delivery_method, delivery_address, waive_fee=waive_fee)

    async def start_payment(
        self,
        customer: Customer,
        delivery_method: Optional[str] = None,
        delivery_address: Optional[str] = None,
    ) -> GatewayOrder:
        """创建网关订单；本地不落库，订单在扣款确认后才生成"""
        context = await self._build_context(customer, delivery_method, delivery_address)
        amount = f"{context.total:.2f}"
        logger.info("payment_create_request", user_id=customer.id, amount=amount, provider=self.gateway.provider)
        gateway_order = await self.gateway.create_order(amount)
        logger.info(
            "payment_create_response",
            user_id=customer.id,
            gateway_order_id=gateway_order.id,
            status=gateway_order.status,
        )
        return gateway_order

    async def checkout_without_payment(
        self,
        customer: Customer,
        delivery_method: Optional[str] = None,
        delivery_address: Optional[str] = None,
    ) -> OrderCreated:
        """到店付款/稍后付款：直接生成 unpaid 订单"""
        context = await self._build_context(customer, delivery_method, delivery_address)
        return await self._order_factory.create_order(customer.id, context)

    async def checkout_on_behalf(
        self,
        admin: Customer,
        user_id: int,
        delivery_method: Optional[str] = None,
        delivery_address: Optional[str] = None,
        *,
        waive_fee: bool = False,
    ) -> OrderCreated:
        """
        管理员代客下单（到店/稍后付款）

        Converts the shopper's cart into an unpaid order. Only this admin path
        may waive the delivery fee; the waiver is priced into the context
        before the order exists, so the header stays immutable afterwards.
        """
        if not admin.is_admin:
            raise AdminRoleRequiredException()
        async with self._uow_factory(readonly=True) as uow:
            customer = await uow.customer_repository.get_by_id(user_id)
        if customer is None:
            raise UserNotFoundException(str(user_id))
        context = await self._build_context(customer, delivery_method, delivery_address, waive_fee=waive_fee)
        created = await self._order_factory.create_order(customer.id, context)
        logger.info(
            "order_placed_by_admin",
            order_id=created.order_id,
            user_id=customer.id,
            admin_id=admin.id,
            delivery_fee=str(context.delivery_fee),
            fee_waived=waive_fee,
        )
        return created

    async def capture_payment(
        self,
        customer: Customer,
        gateway_order_id: str,
        delivery_method: Optional[str] = None,
        delivery_address: Optional[str] = None,
    ) -> PaymentOutcomeDTO:
        if not customer.is_shopper:
            raise ShopperRoleRequiredException()
        # 客户端断开不应中断已确认扣款的落库
        return await asyncio.shield(
            self._capture(customer, gateway_order_id, delivery_method, delivery_address)
        )

    async def _capture(
        self,
        customer: Customer,
        gateway_order_id: str,
        delivery_method: Optional[str],
        delivery_address: Optional[str],
    ) -> PaymentOutcomeDTO:
        provider = self.gateway.provider
        logger.info("payment_capture_request", user_id=customer.id, gateway_order_id=gateway_order_id)
        result = await self.gateway.capture_order(
            gateway_order_id,
            idempotency_key=_ensure_idempotency_key("capture", provider, gateway_order_id),
        )
        if (result.status or "").upper() not in CAPTURE_CONFIRMED_STATUSES:
            logger.warning(
                "payment_capture_not_completed",
                gateway_order_id=gateway_order_id,
                status=result.status,
            )
            raise PaymentGatewayException(
                "Payment was not completed by the provider.",
                provider=provider,
                provider_code=result.status,
                details={"gateway_order_id": gateway_order_id, "payload": result.payload},
            )

        capture_id = result.capture_id
        if not capture_id:
            logger.warning("capture_id_missing", gateway_order_id=gateway_order_id)
            capture_id = gateway_order_id

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_is_transient_storage_error),
                stop=stop_after_attempt(_RECORD_ATTEMPTS),
                wait=wait_exponential(multiplier=0.05, max=0.5),
                reraise=True,
            ):
                with attempt:
                    # 重复回调：同一扣款ID只对应一个订单
                    duplicate = await self._recorded_capture(capture_id, result.status)
                    if duplicate is not None:
                        return duplicate
                    try:
                        return await self._record_capture(
                            customer, gateway_order_id, capture_id, result, delivery_method, delivery_address
                        )
                    except (CaptureAlreadyRecordedException, EmptyCartException):
                        # 并发请求先提交时，本请求会看到唯一约束冲突或已清空的购物车
                        duplicate = await self._recorded_capture(capture_id, result.status)
                        if duplicate is not None:
                            return duplicate
                        raise
        except (BusinessException, SQLAlchemyError) as exc:
            log_payment_incident(
                logger,
                "capture_not_recorded",
                user_id=customer.id,
                gateway_order_id=gateway_order_id,
                capture_id=capture_id,
                amount=str(result.amount) if result.amount is not None else None,
                error=str(exc),
                error_type=getattr(exc, "error_type", type(exc).__name__),
            )
            raise PaymentRecordFailedException(
                details={"gateway_order_id": gateway_order_id, "capture_id": capture_id}
            ) from exc

    async def _recorded_capture(self, capture_id: str, gateway_status: Optional[str]) -> Optional[PaymentOutcomeDTO]:
        async with self._uow_factory(readonly=True) as uow:
            existing = await uow.payment_repository.get_capture_by_reference(capture_id)
            if existing is None:
                return None
            order = await uow.order_repository.get_by_id(existing.order_id)
            refunded = await uow.payment_repository.refunded_total(existing.order_id)
        logger.info("payment_capture_duplicate", capture_id=capture_id, order_id=order.id)
        return _outcome(
            order,
            refunded,
            gateway_status=gateway_status,
            gateway_reference=capture_id,
            already_recorded=True,
        )

    async def _record_capture(
        self,
        customer: Customer,
        gateway_order_id: str,
        capture_id: str,
        result,
        delivery_method: Optional[str],
        delivery_address: Optional[str],
    ) -> PaymentOutcomeDTO:
        context = await self._build_context(customer, delivery_method, delivery_address)
        if result.amount is not None and round_money(result.amount) != context.total:
            logger.warning(
                "capture_amount_mismatch",
                gateway_order_id=gateway_order_id,
                capture_id=capture_id,
                captured=str(result.amount),
                expected=str(context.total),
            )
        amount = round_money(result.amount) if result.amount is not None else context.total
        created = await self._order_factory.create_order(
            customer.id,
            context,
            capture=ConfirmedCapture(
                method=self.gateway.provider,
                reference=capture_id,
                amount=amount,
                payload=result.payload,
            ),
        )
        logger.info(
            "payment_captured",
            order_id=created.order_id,
            capture_id=capture_id,
            amount=str(amount),
        )
        return PaymentOutcomeDTO(
            order_id=created.order_id,
            payment_status=PaymentStatus.PAID.value,
            payment_reference=capture_id,
            refunded_total=ZERO,
            gateway_status=result.status,
            gateway_reference=capture_id,
        )

    # ------------------------------------------------------------------
    # refunds
    # ------------------------------------------------------------------
    async def refund_order(
        self,
        admin: Customer,
        order_id: int,
        amount=None,
        refund_request_id: Optional[int] = None,
        admin_note: Optional[str] = None,
    ) -> PaymentOutcomeDTO:
        if not admin.is_admin:
            raise AdminRoleRequiredException()
        return await asyncio.shield(self._refund(admin, order_id, amount, refund_request_id, admin_note))

    async def _validate_refund(self, order_id: int, amount, refund_request_id: Optional[int]):
        requested: Optional[Decimal] = None
        if amount is not None and not (isinstance(amount, str) and not amount.strip()):
            requested = _to_decimal(amount)
            if requested is None or requested <= 0:
                raise InvalidRefundAmountException(amount)
            requested = round_money(requested)

        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            order.ensure_refundable()
            already = await uow.payment_repository.refunded_total(order_id)
            if refund_request_id is not None:
                refund_request = await uow.refund_request_repository.get_by_id(refund_request_id)
                if refund_request is None or refund_request.order_id != order_id:
                    raise RefundRequestNotFoundException(refund_request_id)
                refund_request.ensure_executable()

        remaining = round_money(order.total - already)
        if remaining <= 0:
            raise InvalidPaymentTransitionException(order_id, order.payment_status.value, PaymentStatus.REFUNDED.value)
        if requested is not None:
            if requested > order.total:
                raise RefundExceedsOrderTotalException(requested, order.total)
            if requested > remaining:
                raise RefundExceedsRemainingException(requested, remaining)
        return order, already, remaining, requested

    async def _refund(
        self,
        admin: Customer,
        order_id: int,
        amount,
        refund_request_id: Optional[int],
        admin_note: Optional[str],
    ) -> PaymentOutcomeDTO:
        order, already, remaining, requested = await self._validate_refund(order_id, amount, refund_request_id)
        target = requested if requested is not None else remaining
        # 首次全额退款不传金额，由网关退回全部已扣款
        gateway_amount = None if requested is None and already == 0 else f"{target:.2f}"
        provider = self.gateway.provider

        logger.info(
            "payment_refund_request",
            order_id=order_id,
            admin_id=admin.id,
            capture_reference=order.payment_reference,
            amount=gateway_amount,
            refund_request_id=refund_request_id,
        )
        result = await self.gateway.refund_capture(
            order.payment_reference,
            gateway_amount,
            idempotency_key=_ensure_idempotency_key(
                "refund", provider, order_id, order.payment_reference, target, already, refund_request_id
            ),
        )
        if (result.status or "").upper() not in REFUND_CONFIRMED_STATUSES:
            logger.warning("payment_refund_not_completed", order_id=order_id, status=result.status)
            raise PaymentGatewayException(
                "Refund was not completed by the provider.",
                provider=provider,
                provider_code=result.status,
                debug_id=result.debug_id,
                details={"order_id": order_id, "payload": result.payload},
            )

        confirmed = round_money(result.amount) if result.amount is not None else target
        try:
            async with self._uow_factory() as uow:
                order = await uow.order_repository.get_for_update(order_id)
                refunded_before = await uow.payment_repository.refunded_total(order_id)
                balance = round_money(order.total - refunded_before)
                if confirmed > balance:
                    logger.warning(
                        "refund_amount_capped",
                        order_id=order_id,
                        confirmed=str(confirmed),
                        remaining=str(balance),
                    )
                    confirmed = balance
                if confirmed <= 0:
                    raise DomainValidationException(
                        "Nothing left to refund on this order.",
                        field="amount",
                        details={"order_id": order_id},
                    )
                cumulative = round_money(refunded_before + confirmed)
                status = order.refund_status_for(cumulative)

                await uow.payment_repository.append(
                    Payment(
                        id=None,
                        order_id=order_id,
                        method=provider,
                        status=status,
                        amount=confirmed,
                        provider_reference=result.id,
                        payload=result.payload,
                    )
                )
                order.apply_refunded_total(cumulative)
                order = await uow.order_repository.update_payment_cache(order)

                if refund_request_id is not None:
                    refund_request = await uow.refund_request_repository.get_by_id(refund_request_id)
                    refund_request.record_refund(
                        confirmed,
                        fully_refunded=status == PaymentStatus.REFUNDED,
                        admin_note=admin_note,
                    )
                    await uow.refund_request_repository.update(refund_request)
        except (BusinessException, SQLAlchemyError) as exc:
            log_payment_incident(
                logger,
                "refund_not_recorded",
                order_id=order_id,
                capture_reference=order.payment_reference,
                refund_id=result.id,
                amount=str(confirmed),
                refund_request_id=refund_request_id,
                error=str(exc),
                error_type=getattr(exc, "error_type", type(exc).__name__),
            )
            raise PaymentRecordFailedException(
                details={"order_id": order_id, "refund_id": result.id, "amount": str(confirmed)}
            ) from exc

        logger.info(
            "payment_refunded",
            order_id=order_id,
            refund_id=result.id,
            amount=str(confirmed),
            refunded_total=str(cumulative),
            payment_status=order.payment_status.value,
        )
        return _outcome(order, cumulative, gateway_status=result.status, gateway_reference=result.id)

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------
    async def link_capture_reference(
        self,
        admin: Customer,
        order_id: int,
        reference: str,
        method: str = "paypal",
    ) -> PaymentOutcomeDTO:
        """
        人工对账：关联扣款ID

        The cached reference must agree with the ledger. When the ledger already
        holds a capture for this order, only that reference is accepted and no
        row is written. Otherwise a ``paid`` row with ``source=manual_link`` is
        appended first, so the cache never points at a capture the ledger has
        not seen. A reference owned by another order is rejected.
        """
        if not admin.is_admin:
            raise AdminRoleRequiredException()
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_for_update(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            entries = await uow.payment_repository.list_by_order(order_id)
            captures = [e for e in entries if e.is_capture]
            recorded = captures[0].provider_reference if captures else None
            owner = await uow.payment_repository.get_capture_by_reference(reference)
            if owner is not None and owner.order_id != order_id:
                raise CaptureReferenceConflictException(
                    order_id, reference, recorded, recorded_order_id=owner.order_id
                )
            upgraded = order.link_capture_reference(reference, method, recorded_reference=recorded)
            appended = not captures
            if appended:
                await uow.payment_repository.append(
                    Payment(
                        id=None,
                        order_id=order_id,
                        method=order.payment_method,
                        status=PaymentStatus.PAID,
                        amount=order.total,
                        provider_reference=reference,
                        payload={"source": "manual_link", "admin_id": admin.id},
                    )
                )
            order = await uow.order_repository.update_payment_cache(order)
            refunded = await uow.payment_repository.refunded_total(order_id)
        logger.info(
            "capture_reference_linked",
            order_id=order_id,
            admin_id=admin.id,
            reference=reference,
            upgraded=upgraded,
            ledger_row_appended=appended,
        )
        return _outcome(order, refunded)

    async def reconcile_order(self, order_id: int) -> PaymentOutcomeDTO:
        """
        按台账重算订单支付缓存

        Idempotent and upgrade-only: a cache that is ahead of the ledger is
        left alone.
        """
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_for_update(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            entries = await uow.payment_repository.list_by_order(order_id)
            captures = [e for e in entries if e.is_capture]
            refunded = refunded_total(entries)
            target = order.status_from_ledger(bool(captures), refunded)

            changed = target != order.payment_status
            if captures and not order.payment_reference:
                order.payment_reference = captures[0].provider_reference
                order.payment_method = order.payment_method or captures[0].method
                changed = True
            if changed:
                previous = order.payment_status
                order.payment_status = target
                order = await uow.order_repository.update_payment_cache(order)
                logger.warning(
                    "order_payment_cache_repaired",
                    order_id=order_id,
                    previous=previous.value,
                    current=target.value,
                    refunded_total=str(refunded),
                )
        return _outcome(order, refunded)

    async def refunded_total(self, order_id: int) -> Decimal:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_repository.refunded_total(order_id)

    async def aclose(self) -> None:
        close = getattr(self._gateway, "aclose", None)
        if callable(close):
            await close()
