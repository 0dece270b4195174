"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, model_serializer, ConfigDict
from typing import Optional
from datetime import datetime, timezone

from domain.user.entity import Customer


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class CustomerSummaryDTO(DTOBase):
    """订单相关视图中的客户信息块；账户已删除时 missing=True"""
    id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    address: Optional[str] = None
    missing: bool = False

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_customer(cls, customer: Optional[Customer], user_id: Optional[int] = None) -> "CustomerSummaryDTO":
        if customer is None:
            return cls(id=user_id, missing=True)
        return cls(
            id=customer.id,
            username=customer.username,
            email=customer.email,
            contact=customer.contact,
            address=customer.address,
        )
