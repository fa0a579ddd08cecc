import pytest

from application.dto import (
    AdminUserCreateDTO,
    AdminUserUpdateDTO,
    ChangePasswordDTO,
    LoginDTO,
    ProductCreateDTO,
    ProfileUpdateDTO,
    UserCreateDTO,
    UserListQuery,
)
from domain.common.exceptions import (
    AccountDisabledException,
    AssociationNotFoundException,
    CurrentPasswordMismatchException,
    DomainValidationException,
    DuplicateAssociationException,
    DuplicateKeyException,
    ForbiddenException,
    InvalidCredentialsException,
    SelfDeletionException,
    SessionRevokedException,
    UserNotFoundException,
)
from infrastructure.repositories.user_repository import SQLAlchemyUserRepository


@pytest.mark.asyncio
async def test_register_defaults(user_service):
    user = await user_service.register(
        UserCreateDTO(username="bob", email="bob@example.com", password="secret1")
    )
    assert user.status == "active"
    assert user.role == "user"
    assert user.nickname == "bob"
    assert user.source == "unknown"
    assert user.products == []


@pytest.mark.asyncio
async def test_register_duplicate_username_reports_field(user_service):
    await user_service.register(UserCreateDTO(username="bob", email="bob@example.com", password="secret1"))

    with pytest.raises(DuplicateKeyException) as exc:
        await user_service.register(
            UserCreateDTO(username="bob", email="other@example.com", password="secret1")
        )
    assert exc.value.field == "username"

    with pytest.raises(DuplicateKeyException) as exc:
        await user_service.register(
            UserCreateDTO(username="robert", email="bob@example.com", password="secret1")
        )
    assert exc.value.field == "email"


@pytest.mark.asyncio
async def test_register_rejects_short_password(user_service):
    with pytest.raises(DomainValidationException):
        await user_service.register(UserCreateDTO(username="bob", email="bob@example.com", password="12345"))


@pytest.mark.asyncio
async def test_unique_constraint_backs_up_conflict_check(uow_factory, user_service, monkeypatch):
    """并发注册绕过预检查时，由数据库唯一约束给出 DuplicateKey"""
    await user_service.register(UserCreateDTO(username="bob", email="bob@example.com", password="secret1"))

    async def _no_conflict(self, username, email, exclude_id=None):
        return None

    monkeypatch.setattr(SQLAlchemyUserRepository, "find_conflict", _no_conflict)
    with pytest.raises(DuplicateKeyException) as exc:
        await user_service.register(
            UserCreateDTO(username="bob", email="second@example.com", password="secret1")
        )
    assert exc.value.field == "username"


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(user_service, make_user):
    await make_user("alice")

    with pytest.raises(InvalidCredentialsException) as wrong_password:
        await user_service.login(LoginDTO(username="alice", password="wrongpass"))
    with pytest.raises(InvalidCredentialsException) as no_user:
        await user_service.login(LoginDTO(username="nonexistent", password="x"))

    assert wrong_password.value.message == no_user.value.message
    assert wrong_password.value.code == no_user.value.code == 401


@pytest.mark.asyncio
async def test_login_by_email_stamps_last_login(user_service, make_user, login):
    user = await make_user("alice")
    assert user.last_login_at is None

    result = await login("alice@example.com")
    assert result.user.id == user.id
    assert result.token_type == "bearer"
    assert (await user_service.get_user(user.id)).last_login_at is not None


@pytest.mark.asyncio
async def test_every_login_attempt_is_audited(user_service, make_user, login, count_rows):
    user = await make_user("alice")
    await login("alice")
    with pytest.raises(InvalidCredentialsException):
        await login("alice", "wrongpass")

    assert await count_rows("login_logs", user.id) == 2


@pytest.mark.asyncio
async def test_audit_failure_does_not_break_login(user_service, make_user, login, monkeypatch):
    from infrastructure.repositories.login_audit_repository import SQLAlchemyLoginAuditRepository

    async def _broken(self, entry):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(SQLAlchemyLoginAuditRepository, "append", _broken)
    await make_user("alice")

    result = await login("alice")
    assert result.token
    with pytest.raises(InvalidCredentialsException):
        await login("alice", "wrongpass")


@pytest.mark.asyncio
async def test_disabled_account_cannot_login(user_service, make_user, login, as_identity):
    admin = await make_user("root", role="admin")
    user = await make_user("alice")
    await user_service.admin_update_user(
        as_identity(admin), user.id, AdminUserUpdateDTO(status="inactive")
    )

    with pytest.raises(AccountDisabledException):
        await login("alice")
    # 密码错误时仍然只返回通用错误
    with pytest.raises(InvalidCredentialsException):
        await login("alice", "wrongpass")


@pytest.mark.asyncio
async def test_change_password_revokes_sessions(user_service, make_user, login):
    user = await make_user("alice")
    old = await login("alice")

    await user_service.change_password(
        user.id, ChangePasswordDTO(current_password="secret1", new_password="secret2")
    )

    with pytest.raises(SessionRevokedException):
        await user_service.session_service.validate(old.token)
    with pytest.raises(InvalidCredentialsException):
        await login("alice", "secret1")
    fresh = await login("alice", "secret2")
    assert (await user_service.session_service.validate(fresh.token)).id == user.id


@pytest.mark.asyncio
async def test_change_password_wrong_current_changes_nothing(user_service, make_user, login):
    user = await make_user("alice")
    session = await login("alice")

    with pytest.raises(CurrentPasswordMismatchException) as wrong_current:
        await user_service.change_password(
            user.id, ChangePasswordDTO(current_password="nope!!", new_password="secret2")
        )
    assert wrong_current.value.field == "current_password"
    assert wrong_current.value.code == 400
    # 仍属于凭据校验失败
    assert isinstance(wrong_current.value, InvalidCredentialsException)
    with pytest.raises(DomainValidationException):
        await user_service.change_password(
            user.id, ChangePasswordDTO(current_password="secret1", new_password="123")
        )

    assert (await user_service.session_service.validate(session.token)).id == user.id
    await login("alice", "secret1")


@pytest.mark.asyncio
async def test_logout_and_logout_all(user_service, make_user, login, as_identity):
    user = await make_user("alice")
    first = await login("alice")
    second = await login("alice")
    third = await login("alice")
    identity = as_identity(user)

    assert await user_service.logout(identity, first.token) == 1
    with pytest.raises(SessionRevokedException):
        await user_service.session_service.validate(first.token)
    await user_service.session_service.validate(second.token)

    assert await user_service.logout_all(identity) == 2
    for token in (second.token, third.token):
        with pytest.raises(SessionRevokedException):
            await user_service.session_service.validate(token)


@pytest.mark.asyncio
async def test_blocked_status_requires_remark(user_service, make_user, as_identity):
    admin = as_identity(await make_user("root", role="admin"))
    user = await make_user("alice")

    with pytest.raises(DomainValidationException):
        await user_service.admin_update_user(admin, user.id, AdminUserUpdateDTO(status="blocked"))

    blocked = await user_service.admin_update_user(
        admin, user.id, AdminUserUpdateDTO(status="blocked", disabled_remark="spam")
    )
    assert blocked.status == "blocked"
    assert blocked.disabled_remark == "spam"

    restored = await user_service.admin_update_user(admin, user.id, AdminUserUpdateDTO(status="active"))
    assert restored.status == "active"
    assert restored.disabled_remark is None

    await user_service.admin_update_user(
        admin, user.id, AdminUserUpdateDTO(status="blocked", disabled_remark="spam")
    )
    kept = await user_service.admin_update_user(
        admin, user.id, AdminUserUpdateDTO(status="inactive", disabled_remark="under review")
    )
    assert kept.disabled_remark == "under review"


@pytest.mark.asyncio
async def test_update_rejects_empty_and_unknown_values(user_service, make_user, as_identity):
    admin = as_identity(await make_user("root", role="admin"))
    user = await make_user("alice")

    with pytest.raises(DomainValidationException):
        await user_service.admin_update_user(admin, user.id, AdminUserUpdateDTO())
    with pytest.raises(DomainValidationException):
        await user_service.update_profile(as_identity(user), ProfileUpdateDTO())
    with pytest.raises(DomainValidationException):
        await user_service.admin_update_user(admin, user.id, AdminUserUpdateDTO(role="root"))
    with pytest.raises(DomainValidationException):
        await user_service.admin_update_user(admin, user.id, AdminUserUpdateDTO(status="deleted"))


@pytest.mark.asyncio
async def test_admin_update_rechecks_uniqueness(user_service, make_user, as_identity):
    admin = as_identity(await make_user("root", role="admin"))
    await make_user("bob")
    alice = await make_user("alice")

    with pytest.raises(DuplicateKeyException) as exc:
        await user_service.admin_update_user(admin, alice.id, AdminUserUpdateDTO(username="bob"))
    assert exc.value.field == "username"

    # 保持自身用户名不算冲突
    same = await user_service.admin_update_user(
        admin, alice.id, AdminUserUpdateDTO(username="alice", nickname="Alice")
    )
    assert same.nickname == "Alice"


@pytest.mark.asyncio
async def test_admin_cannot_touch_superadmin(user_service, make_user, as_identity):
    admin = as_identity(await make_user("root", role="admin"))
    boss = await make_user("boss", role="superadmin")
    alice = await make_user("alice")

    with pytest.raises(ForbiddenException):
        await user_service.admin_update_user(admin, boss.id, AdminUserUpdateDTO(nickname="x"))
    with pytest.raises(ForbiddenException):
        await user_service.delete_user(admin, boss.id)
    with pytest.raises(ForbiddenException):
        await user_service.admin_update_user(admin, alice.id, AdminUserUpdateDTO(role="superadmin"))


@pytest.mark.asyncio
async def test_self_profile_password_change_revokes_sessions(user_service, make_user, login, as_identity):
    user = await make_user("alice")
    session = await login("alice")

    updated = await user_service.update_profile(
        as_identity(user), ProfileUpdateDTO(nickname="Al", password="secret9")
    )
    assert updated.nickname == "Al"
    with pytest.raises(SessionRevokedException):
        await user_service.session_service.validate(session.token)
    await login("alice", "secret9")


@pytest.mark.asyncio
async def test_admin_create_user(user_service, make_user, as_identity):
    admin = as_identity(await make_user("root", role="admin"))

    created = await user_service.admin_create_user(
        admin,
        AdminUserCreateDTO(username="carol", email="carol@example.com", password="secret1", role="admin"),
    )
    assert created.role == "admin"
    assert created.source == "admin-created"

    with pytest.raises(DomainValidationException):
        await user_service.admin_create_user(
            admin,
            AdminUserCreateDTO(username="dave", email="dave@example.com", password="secret1", status="blocked"),
        )
    with pytest.raises(ForbiddenException):
        await user_service.admin_create_user(
            admin,
            AdminUserCreateDTO(username="erin", email="erin@example.com", password="secret1", role="superadmin"),
        )


@pytest.mark.asyncio
async def test_list_users_filters_and_pagination(user_service, make_user):
    for name in ("alice", "alicia", "bob"):
        await make_user(name)
    await make_user("root", role="admin")

    items, total = await user_service.list_users(UserListQuery(username="ali"))
    assert total == 2
    assert {u.username for u in items} == {"alice", "alicia"}

    items, total = await user_service.list_users(UserListQuery(role="admin"))
    assert [u.username for u in items] == ["root"]

    items, total = await user_service.list_users(UserListQuery(page=2, size=3))
    assert total == 4
    assert len(items) == 1
    # 最新创建的排在前面，第二页只剩最早的用户
    assert items[0].username == "alice"

    with pytest.raises(DomainValidationException):
        await user_service.list_users(UserListQuery(status="gone"))


@pytest.mark.asyncio
async def test_delete_user_cascades(user_service, make_user, login, as_identity, uow_factory, count_rows):
    admin = as_identity(await make_user("root", role="admin"))
    user = await make_user("alice")
    session = await login("alice")
    with pytest.raises(InvalidCredentialsException):
        await login("alice", "wrongpass")
    await user_service.add_product(admin, user.id, ProductCreateDTO(id="p1", name="Product"))

    assert await user_service.delete_user(admin, user.id) is True

    async with uow_factory(readonly=True) as uow:
        assert await uow.user_repository.get_by_id(user.id) is None
    assert await count_rows("sessions", user.id) == 0
    assert await count_rows("login_logs", user.id) == 0
    with pytest.raises(SessionRevokedException):
        await user_service.session_service.validate(session.token)
    with pytest.raises(UserNotFoundException):
        await user_service.delete_user(admin, user.id)


@pytest.mark.asyncio
async def test_delete_user_is_atomic(user_service, make_user, login, as_identity, uow_factory, monkeypatch, count_rows):
    admin = as_identity(await make_user("root", role="admin"))
    user = await make_user("alice")
    await login("alice")

    async def _fail(self, user_id):
        raise RuntimeError("store failure")

    monkeypatch.setattr(SQLAlchemyUserRepository, "_delete_user_row", _fail)
    with pytest.raises(RuntimeError):
        await user_service.delete_user(admin, user.id)

    async with uow_factory(readonly=True) as uow:
        assert await uow.user_repository.get_by_id(user.id) is not None
    assert await count_rows("sessions", user.id) == 1
    assert await count_rows("login_logs", user.id) == 1


@pytest.mark.asyncio
async def test_cannot_delete_self(user_service, make_user, as_identity):
    admin = as_identity(await make_user("root", role="admin"))
    with pytest.raises(SelfDeletionException):
        await user_service.delete_user(admin, admin.id)


@pytest.mark.asyncio
async def test_product_associations(user_service, make_user, as_identity):
    alice = await make_user("alice")
    owner = as_identity(alice)

    updated = await user_service.add_product(owner, alice.id, ProductCreateDTO(id="p1", name="One"))
    updated = await user_service.add_product(owner, alice.id, ProductCreateDTO(id="p2"))
    assert [p.id for p in updated.products] == ["p1", "p2"]

    with pytest.raises(DuplicateAssociationException):
        await user_service.add_product(owner, alice.id, ProductCreateDTO(id="p1"))
    with pytest.raises(AssociationNotFoundException):
        await user_service.remove_product(owner, alice.id, "never-added")

    updated = await user_service.remove_product(owner, alice.id, "p1")
    assert [p.id for p in updated.products] == ["p2"]
    assert [p.id for p in (await user_service.get_user(alice.id)).products] == ["p2"]


@pytest.mark.asyncio
async def test_product_rules_for_other_users(user_service, make_user, as_identity):
    alice = await make_user("alice")
    bob = as_identity(await make_user("bob"))
    admin = as_identity(await make_user("root", role="admin"))

    with pytest.raises(ForbiddenException):
        await user_service.add_product(bob, alice.id, ProductCreateDTO(id="p1"))
    with pytest.raises(UserNotFoundException):
        await user_service.add_product(admin, 9999, ProductCreateDTO(id="p1"))
    with pytest.raises(UserNotFoundException):
        await user_service.remove_product(admin, 9999, "p1")


@pytest.mark.asyncio
async def test_corrupt_digest_is_internal_error(user_service, make_user, login, uow_factory, count_rows):
    from domain.common.exceptions import CorruptDigestError

    user = await make_user("alice")
    async with uow_factory() as uow:
        entity = await uow.user_repository.get_by_id(user.id)
        entity.hashed_password = "not-a-digest"
        await uow.user_repository.update(entity)

    with pytest.raises(CorruptDigestError):
        await login("alice")
    assert await count_rows("login_logs", user.id) == 1


@pytest.mark.asyncio
async def test_login_clears_expired_sessions_of_that_user(user_service, make_user, login, uow_factory, count_rows):
    from datetime import timedelta

    from application.services.session_service import SessionService

    alice = await make_user("alice")
    bob = await make_user("bob")
    stale = SessionService(uow_factory, ttl=timedelta(minutes=-1))
    for user in (alice, bob):
        async with uow_factory(readonly=True) as uow:
            entity = await uow.user_repository.get_by_id(user.id)
        await stale.issue(entity)
    assert await count_rows("sessions", alice.id) == 1

    fresh = await login("alice")

    assert await count_rows("sessions", alice.id) == 1
    assert (await user_service.session_service.validate(fresh.token)).id == alice.id
    # 其他用户的过期会话不受影响
    assert await count_rows("sessions", bob.id) == 1


@pytest.mark.asyncio
async def test_admin_rename_strips_whitespace(user_service, make_user, as_identity):
    admin = as_identity(await make_user("root", role="admin"))
    await make_user("bob")
    carol = await make_user("carol")

    with pytest.raises(DuplicateKeyException) as exc:
        await user_service.admin_update_user(admin, carol.id, AdminUserUpdateDTO(username="bob "))
    assert exc.value.field == "username"

    renamed = await user_service.admin_update_user(admin, carol.id, AdminUserUpdateDTO(username="  caroline "))
    assert renamed.username == "caroline"
