"""
订单仓储实现
"""
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.order.entity import Order, OrderItem
from domain.order.repository import OrderRepository
from domain.payment.entity import PaymentStatus
from infrastructure.models.order import OrderModel, OrderItemModel
from infrastructure.models.product import ProductModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            user_id=model.user_id,
            total=Decimal(str(model.total)),
            delivery_method=model.delivery_method,
            delivery_address=model.delivery_address,
            delivery_fee=Decimal(str(model.delivery_fee or 0)),
            payment_status=PaymentStatus(model.payment_status),
            payment_method=model.payment_method,
            payment_reference=model.payment_reference,
            created_at=model.created_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        return OrderModel(
            user_id=entity.user_id,
            total=entity.total,
            delivery_method=entity.delivery_method,
            delivery_address=entity.delivery_address,
            delivery_fee=entity.delivery_fee,
            payment_status=entity.payment_status.value,
            payment_method=entity.payment_method,
            payment_reference=entity.payment_reference,
            created_at=entity.created_at,
        )

    @staticmethod
    def _item_to_entity(model: OrderItemModel, product_name: Optional[str]) -> OrderItem:
        return OrderItem(
            id=model.id,
            order_id=model.order_id,
            product_id=model.product_id,
            quantity=model.quantity,
            unit_price=Decimal(str(model.unit_price)),
            product_name=product_name,
        )

    async def create(self, order: Order) -> Order:
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()  # 获取生成的ID
        await self.session.refresh(db_order)
        logger.info("order_created", order_id=db_order.id, user_id=db_order.user_id, total=str(db_order.total))
        return self._to_entity(db_order)

    async def add_items(self, order_id: int, items: Iterable[OrderItem]) -> List[OrderItem]:
        db_items = [
            OrderItemModel(
                order_id=order_id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in items
        ]
        self.session.add_all(db_items)
        await self.session.flush()
        return [self._item_to_entity(m, None) for m in db_items]

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order_id))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_for_update(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id).with_for_update()
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def update_payment_cache(self, order: Order) -> Order:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order.id))
        db_order = result.scalar_one_or_none()
        if not db_order:
            raise ValueError(f"Order with id {order.id} not found")

        db_order.payment_status = order.payment_status.value
        db_order.payment_method = order.payment_method
        db_order.payment_reference = order.payment_reference
        await self.session.flush()

        logger.info(
            "order_payment_cache_updated",
            order_id=order.id,
            payment_status=order.payment_status.value,
            payment_reference=order.payment_reference,
        )
        return self._to_entity(db_order)

    async def list_by_user(self, user_id: int) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_all(self) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel).order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def items_by_order_ids(self, order_ids: Iterable[int]) -> dict[int, List[OrderItem]]:
        ids = list(order_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(OrderItemModel, ProductModel.name)
            .outerjoin(ProductModel, ProductModel.id == OrderItemModel.product_id)
            .where(OrderItemModel.order_id.in_(ids))
            .order_by(OrderItemModel.id.asc())
        )
        grouped: dict[int, List[OrderItem]] = {oid: [] for oid in ids}
        for item, product_name in result.all():
            grouped[item.order_id].append(self._item_to_entity(item, product_name))
        return grouped
