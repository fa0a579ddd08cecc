"""
用户领域服务 - 处理复杂的业务逻辑
"""
from typing import Optional, List
from datetime import datetime, timezone
import hashlib
import hmac
import secrets

from .entity import User, Role, UserStatus
from .repository import UserRepository
from .events import UserRegistered, PasswordChanged, UserProfileUpdated
from core.config import settings
from domain.common.exceptions import (
    CorruptDigestError,
    DomainValidationException,
    DuplicateKeyException,
    InvalidCredentialsException,
    AccountDisabledException,
    UserNotFoundException,
)


class PasswordService:
    """密码服务 - 加盐单向哈希与校验

    摘要格式: pbkdf2_sha256$<iterations>$<salt>$<hex digest>
    """

    ALGORITHM = "pbkdf2_sha256"

    def __init__(self, iterations: Optional[int] = None):
        self.iterations = iterations or settings.PASSWORD_HASH_ITERATIONS

    def _derive(self, password: str, salt: str, iterations: int) -> str:
        return hashlib.pbkdf2_hmac(
            "sha256",
            password.encode("utf-8"),
            salt.encode("utf-8"),
            iterations,
        ).hex()

    def hash_password(self, password: str) -> str:
        """密码哈希，每次调用使用新的随机盐"""
        salt = secrets.token_hex(16)
        digest = self._derive(password, salt, self.iterations)
        return f"{self.ALGORITHM}${self.iterations}${salt}${digest}"

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """用摘要中的盐与迭代次数重新计算并做常量时间比较"""
        parts = (hashed_password or "").split("$")
        if len(parts) != 4 or parts[0] != self.ALGORITHM:
            raise CorruptDigestError("unrecognised password digest format")
        _, raw_iterations, salt, expected = parts
        try:
            iterations = int(raw_iterations)
        except ValueError:
            raise CorruptDigestError("invalid iteration count in password digest")
        if iterations <= 0 or not salt or not expected:
            raise CorruptDigestError("incomplete password digest")
        actual = self._derive(plain_password, salt, iterations)
        return hmac.compare_digest(actual, expected)

    @staticmethod
    def validate_password_strength(password: Optional[str], field: str = "password") -> None:
        """业务规则：密码最小长度"""
        if not password or len(password) < settings.PASSWORD_MIN_LENGTH:
            raise DomainValidationException(
                f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
                field=field,
            )


# 自助更新与管理员更新允许修改的字段
SELF_EDITABLE_FIELDS = frozenset({"nickname", "avatar", "password"})
ADMIN_EDITABLE_FIELDS = frozenset({
    "username", "email", "nickname", "avatar", "role", "status", "disabled_remark",
})


class UserDomainService:
    """用户领域服务 - 编排复杂的业务流程"""

    def __init__(self, user_repository: UserRepository,
                 password_service: Optional[PasswordService] = None):
        self.user_repository = user_repository
        self.password_service = password_service or PasswordService()
        self.events: List = []  # 领域事件收集

    async def _ensure_unique(self, username: Optional[str], email: Optional[str],
                             exclude_id: Optional[int] = None) -> None:
        existing = await self.user_repository.find_conflict(username, email, exclude_id)
        if existing is None:
            return
        if username is not None and existing.username == username:
            raise DuplicateKeyException("username", username)
        raise DuplicateKeyException("email", email)

    async def register_user(self,
                            username: Optional[str],
                            email: Optional[str],
                            password: Optional[str],
                            nickname: Optional[str] = None,
                            source: Optional[str] = None,
                            role: Role = Role.USER,
                            status: UserStatus = UserStatus.ACTIVE,
                            disabled_remark: Optional[str] = None) -> User:
        """用户注册的业务流程（管理员创建共用）"""
        if not username or not email or not password:
            raise DomainValidationException("Username, email and password are required")
        self.password_service.validate_password_strength(password)
        if status == UserStatus.BLOCKED and not disabled_remark:
            raise DomainValidationException(
                "A disabled remark is required when blocking a user",
                field="disabled_remark",
            )

        # 一次查询同时检查用户名与邮箱
        await self._ensure_unique(username, email)

        now = datetime.now(timezone.utc)
        user = User(
            id=None,
            username=username,
            email=email,
            hashed_password=self.password_service.hash_password(password),
            nickname=nickname or username,
            role=role,
            status=status,
            disabled_remark=disabled_remark if status == UserStatus.BLOCKED else None,
            source=source or "unknown",
            created_at=now,
            updated_at=now,
        )
        created_user = await self.user_repository.create(user)

        self.events.append(UserRegistered(
            user_id=created_user.id,
            username=created_user.username,
            source=created_user.source,
        ))
        return created_user

    def verify_credentials(self, user: Optional[User], password: str) -> User:
        """登录与改密共用的凭据检查

        用户不存在与密码错误抛出同一个异常；凭据正确但账号非 active 时抛出 AccountDisabled。
        """
        if user is None:
            raise InvalidCredentialsException()
        if not self.password_service.verify_password(password or "", user.hashed_password):
            raise InvalidCredentialsException()
        if not user.is_active:
            raise AccountDisabledException()
        return user

    async def authenticate_user(self, identifier: str, password: str) -> User:
        """用户认证：用户名或邮箱均可"""
        user = await self.user_repository.find_by_username_or_email(identifier)
        return self.verify_credentials(user, password)

    async def get_user_or_raise(self, user_id: int) -> User:
        user = await self.user_repository.get_by_id(user_id)
        if not user:
            raise UserNotFoundException(user_id)
        return user

    async def change_user_password(self, user_id: int,
                                   current_password: str,
                                   new_password: str) -> User:
        """修改密码的业务流程（会话撤销由应用层在同一事务内完成）"""
        if not current_password or not new_password:
            raise DomainValidationException("Current and new password are required")
        self.password_service.validate_password_strength(new_password, field="new_password")

        user = await self.get_user_or_raise(user_id)
        self.verify_credentials(user, current_password)

        user.change_password(self.password_service.hash_password(new_password))
        updated_user = await self.user_repository.update(user)

        self.events.append(PasswordChanged(user_id=user_id))
        return updated_user

    async def update_user(self, user: User, changes: dict, *, admin: bool,
                          updated_by: Optional[int] = None) -> User:
        """资料更新业务流程

        changes 只包含调用方显式提供的字段（None 表示显式置空）。
        """
        allowed = ADMIN_EDITABLE_FIELDS if admin else SELF_EDITABLE_FIELDS
        unknown = set(changes) - allowed
        if unknown:
            raise DomainValidationException(
                f"Fields not editable: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )
        if not changes:
            raise DomainValidationException("No fields supplied for update")

        updated_fields = list(changes)

        if "username" in changes or "email" in changes:
            username = changes.get("username")
            email = changes.get("email")
            if ("username" in changes and not username) or ("email" in changes and not email):
                raise DomainValidationException("Username and email must not be empty")
            await self._ensure_unique(username, email, exclude_id=user.id)
            if username:
                user.username = username
            if email:
                user.email = email

        if "nickname" in changes:
            user.nickname = changes["nickname"]
        if "avatar" in changes:
            user.avatar = changes["avatar"]

        if "password" in changes:
            self.password_service.validate_password_strength(changes["password"])
            user.change_password(self.password_service.hash_password(changes["password"]))
            self.events.append(PasswordChanged(user_id=user.id))

        if "role" in changes:
            user.role = Role.parse(changes["role"])

        if "status" in changes:
            user.change_status(
                UserStatus.parse(changes["status"]),
                remark=changes.get("disabled_remark"),
                remark_supplied="disabled_remark" in changes,
            )
        elif "disabled_remark" in changes:
            if user.status == UserStatus.BLOCKED and not changes["disabled_remark"]:
                raise DomainValidationException(
                    "A disabled remark is required when blocking a user",
                    field="disabled_remark",
                )
            user.disabled_remark = changes["disabled_remark"]

        user.touch()
        updated_user = await self.user_repository.update(user)

        self.events.append(UserProfileUpdated(
            user_id=user.id,
            updated_fields=updated_fields,
            updated_by=updated_by,
        ))
        return updated_user

    async def add_product(self, user_id: int, product_id: str,
                          name: Optional[str] = None) -> User:
        user = await self.get_user_or_raise(user_id)
        association = user.add_product(product_id, name)
        await self.user_repository.add_product(user_id, association)
        return user

    async def remove_product(self, user_id: int, product_id: str) -> User:
        user = await self.get_user_or_raise(user_id)
        user.remove_product(product_id)
        await self.user_repository.remove_product(user_id, product_id)
        return user

    def get_domain_events(self) -> List:
        """获取并清空领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events


__all__ = ["PasswordService", "UserDomainService"]
