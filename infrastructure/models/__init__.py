"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .product import ProductModel
from .cart import CartModel
from .order import OrderModel, OrderItemModel
from .payment import PaymentModel
from .refund_request import RefundRequestModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "ProductModel",
    "CartModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
    "RefundRequestModel",
]
