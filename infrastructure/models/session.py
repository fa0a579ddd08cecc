"""
用户会话数据库模型 - SQLAlchemy ORM模型

令牌本身可独立验签，会话记录用于服务端撤销：
删除记录后，即使令牌尚未到期也会在下一次校验时失效。
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, Text
from datetime import datetime, timezone

from .base import Base


class UserSessionModel(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True, comment="用户ID")

    # 完整令牌，全局唯一
    token = Column(String(512), unique=True, nullable=False, comment="访问令牌")

    # 客户端信息（可选，用于安全审计）
    ip_address = Column(String(45), nullable=True, comment="IP地址（支持IPv6）")
    user_agent = Column(Text, nullable=True, comment="User-Agent")
    device_id = Column(String(100), nullable=True, comment="设备ID")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    expires_at = Column(DateTime(timezone=True), nullable=False, comment="过期时间")

    __table_args__ = (
        Index("ix_user_sessions_token_expires", "token", "expires_at"),
    )

    def __repr__(self):
        return f"<UserSessionModel(id={self.id}, user_id={self.user_id}, expires_at={self.expires_at})>"
