"""
登录日志仓储实现
"""
from sqlalchemy.ext.asyncio import AsyncSession

from domain.user.entity import LoginAuditEntry
from domain.user.login_audit_repository import LoginAuditRepository
from infrastructure.models.login_log import LoginLogModel


class SQLAlchemyLoginAuditRepository(LoginAuditRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, entry: LoginAuditEntry) -> None:
        record = LoginLogModel(
            user_id=entry.user_id,
            username=entry.username,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            success=entry.success,
            message=entry.message,
        )
        if entry.created_at is not None:
            record.created_at = entry.created_at
        self.session.add(record)
        await self.session.flush()

