"""
会话仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from domain.user.entity import UserSession
from domain.user.session_repository import SessionRepository
from infrastructure.models.session import UserSessionModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemySessionRepository(SessionRepository):
    """会话仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserSessionModel) -> UserSession:
        return UserSession(
            id=model.id,
            user_id=model.user_id,
            token=model.token,
            expires_at=model.expires_at,
            ip_address=model.ip_address,
            user_agent=model.user_agent,
            device_id=model.device_id,
            created_at=model.created_at,
        )

    async def create(self, session: UserSession) -> UserSession:
        """创建会话记录"""
        db_session = UserSessionModel(
            user_id=session.user_id,
            token=session.token,
            expires_at=session.expires_at,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            device_id=session.device_id,
        )
        if session.created_at is not None:
            db_session.created_at = session.created_at

        self.session.add(db_session)
        await self.session.flush()

        logger.info(
            "user_session_created",
            user_id=session.user_id,
            session_id=db_session.id,
        )
        return self._to_entity(db_session)

    async def find_valid(self, token: str, now: datetime) -> Optional[UserSession]:
        """令牌完全匹配且未过期"""
        result = await self.session.execute(
            select(UserSessionModel).where(
                UserSessionModel.token == token,
                UserSessionModel.expires_at > now,
            )
        )
        db_session = result.scalar_one_or_none()
        return self._to_entity(db_session) if db_session else None

    async def delete(self, token: str, user_id: Optional[int] = None) -> int:
        """删除单个会话（幂等）"""
        stmt = delete(UserSessionModel).where(UserSessionModel.token == token)
        if user_id is not None:
            stmt = stmt.where(UserSessionModel.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def delete_all_for_user(self, user_id: int) -> int:
        """删除用户所有会话"""
        result = await self.session.execute(
            delete(UserSessionModel).where(UserSessionModel.user_id == user_id)
        )
        count = result.rowcount or 0
        logger.info("user_sessions_deleted", user_id=user_id, count=count)
        return count

    async def delete_expired(self, now: datetime, user_id: Optional[int] = None) -> int:
        """清理已过期会话；给定 user_id 时只清理该用户的"""
        stmt = delete(UserSessionModel).where(UserSessionModel.expires_at <= now)
        if user_id is not None:
            stmt = stmt.where(UserSessionModel.user_id == user_id)
        result = await self.session.execute(stmt)
        count = result.rowcount or 0
        if count:
            logger.info("expired_sessions_deleted", user_id=user_id, count=count)
        return count
