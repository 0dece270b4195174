"""
账户仓储实现 - 只读
"""
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.user.entity import Customer
from domain.user.repository import CustomerRepository
from infrastructure.models.user import UserModel


class SQLAlchemyCustomerRepository(CustomerRepository):
    """账户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> Customer:
        """将数据库模型转换为领域实体"""
        return Customer(
            id=model.id,
            username=model.username,
            email=model.email,
            role=model.role,
            address=model.address,
            contact=model.contact,
            free_delivery=bool(model.free_delivery),
        )

    async def get_by_id(self, user_id: int) -> Optional[Customer]:
        result = await self.session.execute(select(UserModel).where(UserModel.id == user_id))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def get_many(self, user_ids: Iterable[int]) -> dict[int, Customer]:
        ids = {uid for uid in user_ids if uid is not None}
        if not ids:
            return {}
        result = await self.session.execute(select(UserModel).where(UserModel.id.in_(ids)))
        return {m.id: self._to_entity(m) for m in result.scalars().all()}
