"""
API依赖项 - 认证和授权
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from application.services.session_service import SessionService
from application.services.user_service import UserApplicationService
from application.dto import ClientInfo, IdentityDTO
from api.middleware import resolve_client_ip
from core.exceptions import MissingCredentialException, MalformedCredentialException
from domain.common.exceptions import ForbiddenException
from domain.user.authorization import authorize
from domain.user.entity import Role
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# 仅用于 OpenAPI 声明安全方案；请求头由 get_token 自行解析以区分缺失与格式错误
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    request: Request,
    _credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """从 Authorization: Bearer <token> 中提取token"""
    authorization = (request.headers.get("Authorization") or "").strip()
    if not authorization:
        raise MissingCredentialException()

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise MalformedCredentialException()
    return parts[1]


def get_client_info(request: Request) -> ClientInfo:
    client_ip = getattr(request.state, "client_ip", None) or resolve_client_ip(request)
    return ClientInfo(
        ip_address=client_ip,
        user_agent=request.headers.get("User-Agent"),
    )


async def get_session_service() -> SessionService:
    return SessionService(uow_factory=SQLAlchemyUnitOfWork)


async def get_user_service(
    session_service: SessionService = Depends(get_session_service),
) -> UserApplicationService:
    return UserApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        session_service=session_service,
    )


async def get_current_identity(
    token: str = Depends(get_token),
    session_service: SessionService = Depends(get_session_service),
) -> IdentityDTO:
    """获取当前登录用户（签名、会话记录、用户状态三段校验）"""
    return await session_service.validate(token)


def require_roles(*roles: Role):
    """角色守卫：返回一个只放行指定角色的依赖"""

    async def _dependency(
        identity: IdentityDTO = Depends(get_current_identity),
    ) -> IdentityDTO:
        if not authorize(identity, roles):
            raise ForbiddenException()
        return identity

    return _dependency


require_admin = require_roles(Role.ADMIN, Role.SUPERADMIN)
