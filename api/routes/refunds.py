"""
退款申请API路由
"""
from typing import List

from fastapi import APIRouter, Depends

from api.dependencies import get_current_user, get_refund_request_service, require_admin
from application.dtos.refunds import AdminRefundRequestRowDTO, RefundModerationDTO, RefundRequestDTO
from application.services.refund_request_service import RefundRequestService
from core.response import Response as ApiResponse, success_response
from domain.user.entity import Customer

router = APIRouter(prefix="/refund-requests", tags=["退款申请"])


@router.get("/mine", summary="我的退款申请", response_model=ApiResponse[List[RefundRequestDTO]])
async def my_refund_requests(
    current_user: Customer = Depends(get_current_user),
    service: RefundRequestService = Depends(get_refund_request_service),
):
    return success_response(data=await service.list_for_customer(current_user))


@router.get("", summary="全部退款申请（管理员）", response_model=ApiResponse[List[AdminRefundRequestRowDTO]])
async def all_refund_requests(
    admin: Customer = Depends(require_admin),
    service: RefundRequestService = Depends(get_refund_request_service),
):
    return success_response(data=await service.list_all(admin))


@router.post("/{refund_request_id}/approve", summary="批准", response_model=ApiResponse[RefundRequestDTO])
async def approve(
    refund_request_id: int,
    payload: RefundModerationDTO,
    admin: Customer = Depends(require_admin),
    service: RefundRequestService = Depends(get_refund_request_service),
):
    """批准不会退款；退款由管理员在订单上单独执行"""
    result = await service.approve(admin, refund_request_id, payload.admin_note)
    return success_response(data=result, message="Refund request approved")


@router.post("/{refund_request_id}/deny", summary="拒绝", response_model=ApiResponse[RefundRequestDTO])
async def deny(
    refund_request_id: int,
    payload: RefundModerationDTO,
    admin: Customer = Depends(require_admin),
    service: RefundRequestService = Depends(get_refund_request_service),
):
    result = await service.deny(admin, refund_request_id, payload.admin_note)
    return success_response(data=result, message="Refund request denied")
