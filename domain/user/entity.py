"""
用户领域实体 - 包含核心业务规则
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from dataclasses import dataclass, field

from domain.common.exceptions import (
    DomainValidationException,
    DuplicateAssociationException,
    AssociationNotFoundException,
)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @classmethod
    def parse(cls, value) -> "Role":
        """在边界处把外部输入转换为角色枚举，未知值视为参数错误"""
        try:
            return cls(value)
        except ValueError:
            raise DomainValidationException(f"Unknown role: {value}", field="role")


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, value) -> "UserStatus":
        try:
            return cls(value)
        except ValueError:
            raise DomainValidationException(f"Unknown status: {value}", field="status")


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPERADMIN})


@dataclass
class ProductAssociation:
    """用户关联的产品（业务含义对本系统不透明）"""
    id: str
    name: Optional[str] = None
    joined_at: Optional[datetime] = None


@dataclass
class UserSession:
    """一次登录产生的会话记录，创建后不再修改"""
    user_id: int
    token: str
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_id: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class LoginAuditEntry:
    """登录尝试的审计记录（只追加）"""
    username: str
    success: bool
    message: str
    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class User:
    """用户实体 - 领域核心"""

    id: Optional[int]
    username: str
    email: str
    hashed_password: str
    nickname: Optional[str] = None
    avatar: Optional[str] = None
    role: Role = Role.USER
    status: UserStatus = UserStatus.ACTIVE
    disabled_remark: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    products: List[ProductAssociation] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def record_login(self) -> None:
        """业务规则：记录登录时间"""
        self.last_login_at = datetime.now(timezone.utc)

    def change_password(self, new_password_hash: str) -> None:
        if not new_password_hash:
            raise DomainValidationException("Password hash must not be empty", field="password")
        self.hashed_password = new_password_hash
        self.touch()

    def change_status(self, status: UserStatus, remark: Optional[str] = None,
                      remark_supplied: bool = False) -> None:
        """业务规则：状态变更与禁用备注

        - 设为 blocked 必须附带非空备注
        - 离开 blocked 且未显式提供备注时，清空原备注
        """
        if status == UserStatus.BLOCKED:
            if not remark:
                raise DomainValidationException(
                    "A disabled remark is required when blocking a user",
                    field="disabled_remark",
                )
            self.disabled_remark = remark
        elif remark_supplied:
            self.disabled_remark = remark
        else:
            self.disabled_remark = None
        self.status = status
        self.touch()

    def add_product(self, product_id: str, name: Optional[str] = None) -> ProductAssociation:
        """业务规则：同一产品只能关联一次"""
        if any(p.id == product_id for p in self.products):
            raise DuplicateAssociationException(product_id)
        association = ProductAssociation(
            id=product_id,
            name=name,
            joined_at=datetime.now(timezone.utc),
        )
        self.products.append(association)
        return association

    def remove_product(self, product_id: str) -> None:
        remaining = [p for p in self.products if p.id != product_id]
        if len(remaining) == len(self.products):
            raise AssociationNotFoundException(product_id)
        self.products = remaining
