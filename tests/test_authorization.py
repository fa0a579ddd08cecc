import pytest

from application.dto import IdentityDTO
from domain.common.exceptions import (
    DomainValidationException,
    ForbiddenException,
    SelfDeletionException,
)
from domain.user.authorization import authorize, ensure_can_manage, ensure_not_self, ensure_owner_or_admin
from domain.user.entity import Role


def _identity(user_id: int, role: str) -> IdentityDTO:
    return IdentityDTO(id=user_id, username=f"u{user_id}", email=f"u{user_id}@example.com",
                       role=role, status="active")


def test_authorize_is_membership_check():
    admin = _identity(1, "admin")
    assert authorize(admin, [Role.ADMIN, Role.SUPERADMIN])
    assert not authorize(_identity(2, "user"), ["admin", "superadmin"])
    assert not authorize(None, ["user"])


def test_authorize_rejects_unknown_role_value():
    with pytest.raises(DomainValidationException):
        authorize(_identity(1, "admin"), ["root"])


def test_admin_cannot_manage_superadmin():
    with pytest.raises(ForbiddenException):
        ensure_can_manage(_identity(1, "admin"), _identity(2, "superadmin"))
    ensure_can_manage(_identity(1, "superadmin"), _identity(2, "superadmin"))
    ensure_can_manage(_identity(1, "admin"), _identity(2, "admin"))


def test_nobody_deletes_themself():
    with pytest.raises(SelfDeletionException):
        ensure_not_self(_identity(1, "superadmin"), 1)
    ensure_not_self(_identity(1, "superadmin"), 2)


def test_product_ownership_rule():
    ensure_owner_or_admin(_identity(1, "user"), 1)
    ensure_owner_or_admin(_identity(2, "admin"), 1)
    with pytest.raises(ForbiddenException):
        ensure_owner_or_admin(_identity(3, "user"), 1)
