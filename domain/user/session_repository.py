"""
会话仓储接口 - 定义会话记录数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional
from datetime import datetime

from .entity import UserSession


class SessionRepository(ABC):
    """会话仓储抽象接口

    会话只会被创建或删除，不存在更新操作。
    """

    @abstractmethod
    async def create(self, session: UserSession) -> UserSession:
        """
        创建会话记录

        Args:
            session: 待持久化的会话（token 必须全局唯一）

        Returns:
            带主键的会话
        """
        pass

    @abstractmethod
    async def find_valid(self, token: str, now: datetime) -> Optional[UserSession]:
        """查找与 token 完全匹配且 expires_at > now 的会话"""
        pass

    @abstractmethod
    async def delete(self, token: str, user_id: Optional[int] = None) -> int:
        """删除单个会话，返回删除条数（不存在时为0）"""
        pass

    @abstractmethod
    async def delete_all_for_user(self, user_id: int) -> int:
        """删除用户的全部会话，返回删除条数"""
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime, user_id: Optional[int] = None) -> int:
        """删除 expires_at <= now 的会话（可限定用户），返回删除条数"""
        pass
