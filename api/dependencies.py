"""
API依赖项 - 身份解析、角色校验与服务装配

Tokens are issued elsewhere; this service only verifies them (HS256 with
SECRET_KEY) and reads the account id from ``sub``.
"""
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from application.ports.payment_gateway import PaymentGateway
from application.services.cart_service import CartService
from application.services.checkout_service import CheckoutService
from application.services.order_query_service import OrderQueryService
from application.services.payment_service import PaymentService
from application.services.refund_request_service import RefundRequestService
from core.config import settings
from core.exceptions import UnauthorizedException
from domain.common.exceptions import AdminRoleRequiredException, ShopperRoleRequiredException
from domain.user.entity import Customer
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks.utils.dispatcher import TaskDispatcher
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token issued by the account service",
    auto_error=False,
)


def decode_user_id(token: str) -> int:
    """校验令牌并返回账户ID"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Token expired")
    except jwt.PyJWTError:
        raise UnauthorizedException("Invalid authentication credentials")
    sub = payload.get("sub")
    try:
        return int(sub)
    except (TypeError, ValueError):
        raise UnauthorizedException("Invalid authentication credentials")


async def get_optional_user_id(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Optional[int]:
    """匿名访问返回 None；提供了令牌则必须有效"""
    if bearer_token is None or not bearer_token.credentials:
        return None
    return decode_user_id(bearer_token.credentials)


async def get_current_user(
    user_id: Optional[int] = Depends(get_optional_user_id),
) -> Customer:
    """获取当前登录账户"""
    if user_id is None:
        raise UnauthorizedException()
    async with SQLAlchemyUnitOfWork(readonly=True) as uow:
        customer = await uow.customer_repository.get_by_id(user_id)
    if customer is None:
        raise UnauthorizedException("Account no longer exists")
    structlog.contextvars.bind_contextvars(user_id=customer.id)
    return customer


async def require_shopper(current_user: Customer = Depends(get_current_user)) -> Customer:
    if not current_user.is_shopper:
        raise ShopperRoleRequiredException()
    return current_user


async def require_admin(current_user: Customer = Depends(get_current_user)) -> Customer:
    if not current_user.is_admin:
        raise AdminRoleRequiredException()
    return current_user


def get_gateway(request: Request) -> PaymentGateway:
    """进程内复用同一个网关客户端（保留 OAuth 令牌缓存与连接池）"""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        gateway = get_payment_gateway()
        request.app.state.payment_gateway = gateway
    return gateway


async def get_cart_service() -> CartService:
    return CartService(uow_factory=SQLAlchemyUnitOfWork)


async def get_checkout_service() -> CheckoutService:
    return CheckoutService(uow_factory=SQLAlchemyUnitOfWork)


async def get_payment_service(gateway: PaymentGateway = Depends(get_gateway)) -> PaymentService:
    return PaymentService(uow_factory=SQLAlchemyUnitOfWork, gateway=gateway)


async def get_local_payment_service() -> PaymentService:
    """不触达网关的支付操作（到店付款、人工关联、对账）"""
    return PaymentService(uow_factory=SQLAlchemyUnitOfWork)


async def get_refund_request_service() -> RefundRequestService:
    return RefundRequestService(uow_factory=SQLAlchemyUnitOfWork)


async def get_order_query_service() -> OrderQueryService:
    return OrderQueryService(uow_factory=SQLAlchemyUnitOfWork)


async def get_task_dispatcher() -> TaskDispatcher:
    return TaskDispatcher()
