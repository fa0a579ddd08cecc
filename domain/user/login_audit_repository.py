"""
登录审计仓储接口
"""
from abc import ABC, abstractmethod

from .entity import LoginAuditEntry


class LoginAuditRepository(ABC):
    """登录日志只追加，不提供修改接口"""

    @abstractmethod
    async def append(self, entry: LoginAuditEntry) -> None:
        pass
