"""
授权规则 - 基于角色的访问控制

authorize 只做成员判断；调用方需先通过会话校验拿到 identity。
"""
from typing import Iterable

from .entity import Role, ADMIN_ROLES
from domain.common.exceptions import ForbiddenException, SelfDeletionException


def _role_of(subject) -> Role:
    return Role.parse(getattr(subject, "role", subject))


def authorize(identity, allowed_roles: Iterable) -> bool:
    """identity 的角色是否在允许的角色集合内"""
    if identity is None:
        return False
    allowed = {Role.parse(r) for r in allowed_roles}
    return _role_of(identity) in allowed


def ensure_can_manage(actor, target) -> None:
    """admin 不能修改或删除 superadmin"""
    if _role_of(actor) == Role.ADMIN and _role_of(target) == Role.SUPERADMIN:
        raise ForbiddenException("Insufficient permission to manage a superadmin")


def ensure_not_self(actor, target_id: int) -> None:
    if actor.id == target_id:
        raise SelfDeletionException()


def ensure_owner_or_admin(actor, user_id: int) -> None:
    """产品关联只能由管理员或用户本人维护"""
    if _role_of(actor) in ADMIN_ROLES:
        return
    if actor.id != user_id:
        raise ForbiddenException()
