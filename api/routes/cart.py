"""
购物车API路由
"""
from typing import List, Optional

from fastapi import APIRouter, Depends

from api.dependencies import get_cart_service, get_optional_user_id, require_shopper
from application.dtos.checkout import CartAddDTO, CartLineDTO, CartUpdateDTO
from application.services.cart_service import CartService
from core.response import Response as ApiResponse, success_response
from domain.user.entity import Customer

router = APIRouter(prefix="/cart", tags=["购物车"])


def _lines(snapshot) -> List[CartLineDTO]:
    return [CartLineDTO.from_line(line) for line in snapshot]


@router.get("", summary="购物车快照", response_model=ApiResponse[List[CartLineDTO]])
async def get_cart(
    user_id: Optional[int] = Depends(get_optional_user_id),
    service: CartService = Depends(get_cart_service),
):
    """匿名访问返回空购物车；每行包含按当前商品价格计算的折后单价"""
    snapshot = await service.load_snapshot(user_id)
    return success_response(data=_lines(snapshot))


@router.post("/items", summary="加入购物车", response_model=ApiResponse[List[CartLineDTO]])
async def add_item(
    payload: CartAddDTO,
    current_user: Customer = Depends(require_shopper),
    service: CartService = Depends(get_cart_service),
):
    snapshot = await service.add_item(current_user, payload.product_id, payload.quantity)
    return success_response(data=_lines(snapshot), message="Item added to cart")


@router.patch("/items/{product_id}", summary="修改数量", response_model=ApiResponse[List[CartLineDTO]])
async def update_item(
    product_id: int,
    payload: CartUpdateDTO,
    current_user: Customer = Depends(require_shopper),
    service: CartService = Depends(get_cart_service),
):
    snapshot = await service.update_quantity(current_user, product_id, payload.quantity)
    return success_response(data=_lines(snapshot), message="Cart updated")


@router.delete("/items/{product_id}", summary="移出购物车", response_model=ApiResponse[List[CartLineDTO]])
async def remove_item(
    product_id: int,
    current_user: Customer = Depends(require_shopper),
    service: CartService = Depends(get_cart_service),
):
    snapshot = await service.remove_item(current_user, product_id)
    return success_response(data=_lines(snapshot), message="Item removed from cart")
