"""
会话服务 - 签发、校验与撤销登录会话

校验分两段：先做 JWT 签名/过期检查（不访问数据库），再查询持久化的会话记录，
因此伪造的令牌在第一段即被拒绝，而登出等服务端撤销在下一次校验时立即生效。
"""
from typing import Optional, Callable, Tuple
from datetime import datetime, timedelta, timezone
import jwt
import uuid

from domain.user.entity import User, UserSession
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import (
    InvalidTokenException,
    ExpiredTokenException,
    SessionRevokedException,
    UserInactiveException,
)
from application.dto import ClientInfo, IdentityDTO
from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class SessionService:
    """会话服务

    令牌 exp 与会话记录 expires_at 取同一时刻；会话记录创建后不再修改，
    撤销即删除，新的登录总是创建新的会话。
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        ttl: Optional[timedelta] = None,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
    ):
        self._uow_factory = uow_factory
        self._ttl = ttl if ttl is not None else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM

    @property
    def ttl_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    def create_token(self, user: User, issued_at: datetime, expires_at: datetime) -> str:
        """签发访问令牌"""
        to_encode = {
            "sub": str(user.id),
            "username": user.username,
            "role": user.role.value,
            "iat": issued_at,
            "exp": expires_at,
            "jti": str(uuid.uuid4()),  # 同一秒内的多次登录也得到不同令牌
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def decode_token(self, token: str) -> dict:
        """第一段校验：签名与过期时间"""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredTokenException()
        except jwt.InvalidTokenError as e:
            logger.warning("session_token_invalid", error=str(e))
            raise InvalidTokenException()

        try:
            payload["sub"] = int(payload["sub"])
        except (TypeError, ValueError):
            raise InvalidTokenException("invalid_claims")
        return payload

    async def issue(
        self,
        user: User,
        client: Optional[ClientInfo] = None,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> Tuple[str, UserSession]:
        """签发令牌并持久化对应的会话记录

        传入 uow 时在调用方的事务内写入，与登录时间的更新一起提交；
        同一事务内顺带清理该用户已过期的会话记录。
        """
        if uow is None:
            async with self._uow_factory() as uow_local:
                return await self.issue(user, client, uow=uow_local)

        client = client or ClientInfo()
        # JWT 的 exp 只精确到秒，会话过期时间与之对齐
        issued_at = datetime.now(timezone.utc).replace(microsecond=0)
        expires_at = issued_at + self._ttl
        token = self.create_token(user, issued_at, expires_at)

        record = UserSession(
            user_id=user.id,
            token=token,
            expires_at=expires_at,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device_id=client.device_id,
            created_at=issued_at,
        )
        await uow.session_repository.delete_expired(issued_at, user_id=user.id)
        session = await uow.session_repository.create(record)

        logger.info("session_issued", user_id=user.id, expires_at=expires_at.isoformat())
        return token, session

    async def validate(self, token: str) -> IdentityDTO:
        """校验令牌并返回身份投影"""
        payload = self.decode_token(token)
        user_id = payload["sub"]

        async with self._uow_factory(readonly=True) as uow:
            session = await uow.session_repository.find_valid(token, datetime.now(timezone.utc))
            if session is None or session.user_id != user_id:
                logger.info("session_not_found", user_id=user_id)
                raise SessionRevokedException()

            user = await uow.user_repository.get_by_id(user_id)
            if user is None or not user.is_active:
                logger.info("session_user_inactive", user_id=user_id)
                raise UserInactiveException()

        return IdentityDTO(
            id=user.id,
            username=user.username,
            email=user.email,
            nickname=user.nickname,
            avatar=user.avatar,
            role=user.role.value,
            status=user.status.value,
        )

    async def revoke(
        self,
        user_id: int,
        token: Optional[str] = None,
        *,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> int:
        """撤销单个会话（给定 token）或用户的全部会话；重复撤销返回 0"""
        if uow is None:
            async with self._uow_factory() as uow_local:
                return await self.revoke(user_id, token, uow=uow_local)

        if token is not None:
            count = await uow.session_repository.delete(token, user_id=user_id)
        else:
            count = await uow.session_repository.delete_all_for_user(user_id)
        logger.info("session_revoked", user_id=user_id, single=token is not None, count=count)
        return count
