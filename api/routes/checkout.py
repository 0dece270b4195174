"""
结算与支付API路由

PayPal 流程：
1. POST /checkout/paypal/orders 创建网关订单，前端跳转 approve_url
2. 用户授权后 POST /checkout/paypal/capture 扣款，扣款确认后才生成本地订单
"""
from fastapi import APIRouter, Depends

from api.dependencies import (
    get_checkout_service,
    get_local_payment_service,
    get_payment_service,
    require_shopper,
)
from application.dtos.checkout import CheckoutContext, OrderCreated
from application.dtos.payments import (
    CaptureRequestDTO,
    DeliveryInputDTO,
    GatewayOrder,
    PaymentOutcomeDTO,
)
from application.services.checkout_service import CheckoutService
from application.services.payment_service import PaymentService
from core.response import Response as ApiResponse, success_response
from domain.user.entity import Customer

router = APIRouter(prefix="/checkout", tags=["结算"])


@router.post("/preview", summary="结算预览", response_model=ApiResponse[CheckoutContext])
async def preview(
    payload: DeliveryInputDTO,
    current_user: Customer = Depends(require_shopper),
    service: CheckoutService = Depends(get_checkout_service),
):
    context = await service.preview(current_user, payload.delivery_method, payload.delivery_address)
    return success_response(data=context)


@router.post("/pay-later", summary="稍后付款下单", response_model=ApiResponse[OrderCreated])
async def pay_later(
    payload: DeliveryInputDTO,
    current_user: Customer = Depends(require_shopper),
    service: PaymentService = Depends(get_local_payment_service),
):
    created = await service.checkout_without_payment(
        current_user, payload.delivery_method, payload.delivery_address
    )
    return success_response(data=created, message="Order placed")


@router.post("/paypal/orders", summary="创建PayPal订单", response_model=ApiResponse[GatewayOrder])
async def create_paypal_order(
    payload: DeliveryInputDTO,
    current_user: Customer = Depends(require_shopper),
    service: PaymentService = Depends(get_payment_service),
):
    gateway_order = await service.start_payment(
        current_user, payload.delivery_method, payload.delivery_address
    )
    return success_response(data=gateway_order)


@router.post("/paypal/capture", summary="PayPal扣款并生成订单", response_model=ApiResponse[PaymentOutcomeDTO])
async def capture_paypal_order(
    payload: CaptureRequestDTO,
    current_user: Customer = Depends(require_shopper),
    service: PaymentService = Depends(get_payment_service),
):
    """
    扣款确认后创建订单并写入支付台账

    - 重复提交同一网关订单不会重复建单（`already_recorded=true`）
    - 网关已扣款但本地落库失败时返回 500，并记录 payment_incident 日志
    """
    outcome = await service.capture_payment(
        current_user,
        payload.gateway_order_id,
        payload.delivery_method,
        payload.delivery_address,
    )
    message = "Payment already recorded" if outcome.already_recorded else "Payment captured"
    return success_response(data=outcome, message=message)
