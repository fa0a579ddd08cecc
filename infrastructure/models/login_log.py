"""
登录日志数据库模型
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text
from datetime import datetime, timezone

from .base import Base


class LoginLogModel(Base):
    __tablename__ = "user_login_logs"

    id = Column(Integer, primary_key=True, index=True)

    # 用户名未能解析到用户时为空
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    username = Column(String(255), nullable=False, comment="登录时提交的用户名或邮箱")
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    success = Column(Boolean, nullable=False, default=False)
    message = Column(String(200), nullable=True, comment="结果说明")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    def __repr__(self):
        return f"<LoginLogModel(id={self.id}, username='{self.username}', success={self.success})>"
