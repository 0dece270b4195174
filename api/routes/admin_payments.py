"""
管理员支付运维API：代客下单、退款、人工关联扣款、对账、配送看板与退款台账
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_local_payment_service,
    get_order_query_service,
    get_payment_service,
    get_task_dispatcher,
    require_admin,
)
from application.dtos.orders import DeliveryDashboardEntryDTO, RefundLedgerEntryDTO
from application.dtos.checkout import OrderCreated
from application.dtos.payments import AdminRefundDTO, AssistedCheckoutDTO, LinkCaptureDTO, PaymentOutcomeDTO
from application.services.order_query_service import OrderQueryService
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import Response as ApiResponse, success_response
from domain.user.entity import Customer
from infrastructure.tasks.utils.dispatcher import TaskDispatcher

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["管理员-支付"])


@router.post("/users/{user_id}/pay-later", summary="代客下单（稍后付款）", response_model=ApiResponse[OrderCreated])
async def checkout_on_behalf(
    user_id: int,
    payload: AssistedCheckoutDTO,
    admin: Customer = Depends(require_admin),
    service: PaymentService = Depends(get_local_payment_service),
):
    """
    把顾客购物车转为未付款订单

    - **waive_fee**: 免收配送费，订单生成后不可再修改
    """
    created = await service.checkout_on_behalf(
        admin,
        user_id,
        payload.delivery_method,
        payload.delivery_address,
        waive_fee=payload.waive_fee,
    )
    return success_response(data=created, message="Order placed")


@router.post("/orders/{order_id}/refund", summary="执行退款", response_model=ApiResponse[PaymentOutcomeDTO])
async def refund_order(
    order_id: int,
    payload: AdminRefundDTO,
    admin: Customer = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service),
):
    """
    对已付款订单发起退款

    - **amount**: 缺省为剩余可退金额
    - **refund_request_id**: 关联的退款申请（需为 requested/approved/partially_refunded）
    """
    outcome = await service.refund_order(
        admin,
        order_id,
        amount=payload.amount,
        refund_request_id=payload.refund_request_id,
        admin_note=payload.admin_note,
    )
    return success_response(data=outcome, message="Refund recorded")


@router.post(
    "/orders/{order_id}/capture-reference",
    summary="关联扣款ID",
    response_model=ApiResponse[PaymentOutcomeDTO],
)
async def link_capture_reference(
    order_id: int,
    payload: LinkCaptureDTO,
    admin: Customer = Depends(require_admin),
    service: PaymentService = Depends(get_local_payment_service),
):
    outcome = await service.link_capture_reference(admin, order_id, payload.reference, payload.method)
    return success_response(data=outcome, message="Capture reference linked")


@router.post("/orders/{order_id}/reconcile", summary="按台账修复支付状态")
async def reconcile_order(
    order_id: int,
    background: bool = Query(False, description="交给后台任务执行"),
    admin: Customer = Depends(require_admin),
    service: PaymentService = Depends(get_local_payment_service),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
):
    if background:
        task_id = dispatcher.enqueue_reconcile(order_id)
        logger.info("reconcile_enqueued", order_id=order_id, admin_id=admin.id, task_id=task_id)
        return success_response(data={"order_id": order_id, "task_id": task_id}, message="Reconcile scheduled")
    outcome = await service.reconcile_order(order_id)
    return success_response(data=outcome, message="Order reconciled")


@router.get("/deliveries", summary="配送看板", response_model=ApiResponse[List[DeliveryDashboardEntryDTO]])
async def deliveries_dashboard(
    admin: Customer = Depends(require_admin),
    service: OrderQueryService = Depends(get_order_query_service),
):
    return success_response(data=await service.deliveries_dashboard(admin))


@router.get("/refunds", summary="退款台账", response_model=ApiResponse[List[RefundLedgerEntryDTO]])
async def refund_ledger(
    admin: Customer = Depends(require_admin),
    service: OrderQueryService = Depends(get_order_query_service),
):
    return success_response(data=await service.refund_ledger(admin))
