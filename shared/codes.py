"""
Shared business codes used across layers (Domain/Core/API).

响应信封中的 ``code`` 与传输层 HTTP 状态保持一致（或在其基础上细化），
客户端可以只看 ``code`` 判断结果。
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """业务状态码定义（单一来源）"""

    # 成功
    SUCCESS = 200
    CREATED = 201

    # 客户端错误
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    PARAM_VALIDATION_ERROR = 422

    # 服务端错误
    SYSTEM_ERROR = 500
    SERVICE_UNAVAILABLE = 503


__all__ = ["BusinessCode"]
