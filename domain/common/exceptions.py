"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    """调用方可修正的输入错误（缺字段、长度不足、未知枚举值等）"""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.BAD_REQUEST,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class DuplicateKeyException(BusinessException):
    """唯一约束冲突，field 指明冲突的字段"""

    def __init__(self, field: str, value: str):
        label = "Username" if field == "username" else "Email"
        super().__init__(
            code=BusinessCode.CONFLICT,
            message=f"{label} already exists",
            error_type="DuplicateKey",
            details={field: value},
            field=field,
        )


class InvalidCredentialsException(BusinessException):
    # 用户不存在与密码错误使用同一条消息，避免账号枚举
    def __init__(self):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message="Invalid username or password",
            error_type="InvalidCredentials",
        )


class CurrentPasswordMismatchException(InvalidCredentialsException):
    """改密时原密码错误：调用方已通过会话认证，按输入错误返回 400"""

    def __init__(self):
        BusinessException.__init__(
            self,
            code=BusinessCode.BAD_REQUEST,
            message="Current password is incorrect",
            error_type="InvalidCredentials",
            field="current_password",
        )


class AccountDisabledException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="User account is disabled",
            error_type="AccountDisabled",
        )


class SessionAuthException(BusinessException):
    """会话校验失败的公共基类。

    对外统一渲染为 401 + 通用消息，具体阶段只记录在服务端日志中。
    """

    public_message = "Invalid or expired credential"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=self.public_message,
            error_type="Unauthorized",
        )


class InvalidTokenException(SessionAuthException):
    def __init__(self, reason: str = "invalid_signature"):
        super().__init__(reason)


class ExpiredTokenException(SessionAuthException):
    def __init__(self):
        super().__init__("token_expired")


class SessionRevokedException(SessionAuthException):
    def __init__(self):
        super().__init__("session_revoked")


class UserInactiveException(SessionAuthException):
    def __init__(self):
        super().__init__("user_inactive")


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[int] = None):
        details = {"user_id": user_id} if user_id is not None else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class DuplicateAssociationException(BusinessException):
    def __init__(self, product_id: str):
        super().__init__(
            code=BusinessCode.BAD_REQUEST,
            message="Product already associated",
            error_type="DuplicateAssociation",
            details={"product_id": product_id},
            field="id",
        )


class AssociationNotFoundException(BusinessException):
    def __init__(self, product_id: str):
        super().__init__(
            code=BusinessCode.BAD_REQUEST,
            message="Product association not found",
            error_type="AssociationNotFound",
            details={"product_id": product_id},
        )


class ForbiddenException(BusinessException):
    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
        )


class SelfDeletionException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.BAD_REQUEST,
            message="Cannot delete the currently authenticated user",
            error_type="SelfDeletion",
        )


class CorruptDigestError(Exception):
    """存储的密码摘要无法解析；属于内部故障，不向调用方暴露细节"""
