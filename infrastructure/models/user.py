"""
用户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    """
    用户数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.user.entity.User 中
    """
    __tablename__ = "users"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 用户基本信息
    username = Column(String(50), unique=True, index=True, nullable=False, comment="用户名")
    email = Column(String(255), unique=True, index=True, nullable=False, comment="邮箱")
    nickname = Column(String(100), nullable=True, comment="昵称")
    avatar = Column(String(500), nullable=True, comment="头像地址")

    # 认证信息
    password_hash = Column(String(255), nullable=False, comment="密码哈希")

    # 角色与状态（取值由领域层枚举约束）
    role = Column(String(20), default="user", nullable=False, index=True, comment="角色")
    status = Column(String(20), default="active", nullable=False, index=True, comment="状态")
    disabled_remark = Column(Text, nullable=True, comment="禁用备注")
    source = Column(String(100), nullable=True, index=True, comment="用户来源")

    # 时间信息
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    last_login_at = Column(DateTime(timezone=True), nullable=True, comment="最后登录时间")

    products = relationship(
        "UserProductModel",
        order_by="UserProductModel.id",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<UserModel(id={self.id}, username='{self.username}', email='{self.email}')>"


class UserProductModel(Base):
    """用户产品关联（规范化的列表，按 id 保持插入顺序）"""
    __tablename__ = "user_products"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(100), nullable=False, comment="产品ID")
    name = Column(String(200), nullable=True, comment="产品名称")
    joined_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="关联时间"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_user_products_user_product"),
    )

    def __repr__(self):
        return f"<UserProductModel(user_id={self.user_id}, product_id='{self.product_id}')>"
