"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel, UserProductModel
from .session import UserSessionModel
from .login_log import LoginLogModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "UserProductModel",
    "UserSessionModel",
    "LoginLogModel",
]
