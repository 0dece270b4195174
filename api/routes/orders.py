"""
订单API路由（顾客视角）
"""
from typing import List

from fastapi import APIRouter, Depends

from api.dependencies import get_current_user, get_order_query_service, get_refund_request_service
from application.dtos.orders import InvoiceDTO, OrderSummaryDTO
from application.dtos.refunds import RefundRequestCreateDTO, RefundRequestDTO
from application.services.order_query_service import OrderQueryService
from application.services.refund_request_service import RefundRequestService
from core.response import Response as ApiResponse, success_response
from domain.user.entity import Customer

router = APIRouter(prefix="/orders", tags=["订单"])


@router.get("", summary="我的订单", response_model=ApiResponse[List[OrderSummaryDTO]])
async def order_history(
    current_user: Customer = Depends(get_current_user),
    service: OrderQueryService = Depends(get_order_query_service),
):
    return success_response(data=await service.history(current_user))


@router.get("/{order_id}/invoice", summary="订单发票", response_model=ApiResponse[InvoiceDTO])
async def invoice(
    order_id: int,
    current_user: Customer = Depends(get_current_user),
    service: OrderQueryService = Depends(get_order_query_service),
):
    """订单所有者或管理员可见"""
    return success_response(data=await service.invoice(current_user, order_id))


@router.post(
    "/{order_id}/refund-requests",
    summary="提交退款申请",
    response_model=ApiResponse[RefundRequestDTO],
)
async def submit_refund_request(
    order_id: int,
    payload: RefundRequestCreateDTO,
    current_user: Customer = Depends(get_current_user),
    service: RefundRequestService = Depends(get_refund_request_service),
):
    created = await service.submit(current_user, order_id, payload.reason, payload.amount)
    return success_response(data=created, message="Refund request submitted")
