"""
账户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型

账户的注册、登录与资料维护不在本服务内，这里只映射订单流程会读取的列。
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    """
    账户数据库模型

    所有业务规则都在 domain.user.entity.Customer 中
    """
    __tablename__ = "users"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 账户基本信息
    username = Column(String(150), unique=True, index=True, nullable=False, comment="用户名")
    email = Column(String(254), unique=True, index=True, nullable=False, comment="邮箱")
    role = Column(String(20), nullable=False, default="user", comment="角色: user/admin")

    # 配送资料
    address = Column(String(255), nullable=True, comment="默认配送地址")
    contact = Column(String(50), nullable=True, comment="联系电话")
    free_delivery = Column(Boolean, default=False, nullable=False, comment="是否免配送费")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    def __repr__(self):
        return f"<UserModel(id={self.id}, username='{self.username}', role='{self.role}')>"
