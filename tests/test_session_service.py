from datetime import timedelta

import jwt
import pytest

from application.services.session_service import SessionService
from domain.common.exceptions import (
    ExpiredTokenException,
    InvalidTokenException,
    SessionRevokedException,
    UserInactiveException,
)


async def _entity(uow_factory, user_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.user_repository.get_by_id(user_id)


@pytest.mark.asyncio
async def test_issue_then_validate_returns_identity(session_service, make_user, uow_factory):
    user = await make_user("alice", role="admin")
    token, session = await session_service.issue(await _entity(uow_factory, user.id))

    identity = await session_service.validate(token)
    assert identity.id == user.id
    assert identity.role == "admin"
    assert "hashed_password" not in identity.model_dump()
    assert session.token == token

    claims = jwt.decode(token, options={"verify_signature": False})
    assert claims["sub"] == str(user.id)
    assert claims["role"] == "admin"
    assert claims["exp"] - claims["iat"] == session_service.ttl_seconds


@pytest.mark.asyncio
async def test_tampered_token_fails_before_store_lookup(session_service, make_user, uow_factory):
    user = await make_user("alice")
    token, _ = await session_service.issue(await _entity(uow_factory, user.id))

    with pytest.raises(InvalidTokenException):
        await session_service.validate(token[:-2] + ("aa" if not token.endswith("aa") else "bb"))

    forged = SessionService(uow_factory, secret_key="another-secret")
    with pytest.raises(InvalidTokenException):
        forged.decode_token(token)


@pytest.mark.asyncio
async def test_expired_token(uow_factory, make_user):
    user = await make_user("alice")
    short_lived = SessionService(uow_factory, ttl=timedelta(minutes=-1))
    token, _ = await short_lived.issue(await _entity(uow_factory, user.id))

    with pytest.raises(ExpiredTokenException):
        await short_lived.validate(token)


@pytest.mark.asyncio
async def test_revoke_single_session(session_service, make_user, uow_factory):
    user = await make_user("alice")
    entity = await _entity(uow_factory, user.id)
    first, _ = await session_service.issue(entity)
    second, _ = await session_service.issue(entity)
    assert first != second

    assert await session_service.revoke(user.id, first) == 1
    with pytest.raises(SessionRevokedException):
        await session_service.validate(first)
    assert (await session_service.validate(second)).id == user.id

    # 重复撤销不是错误
    assert await session_service.revoke(user.id, first) == 0


@pytest.mark.asyncio
async def test_revoke_all_invalidates_every_token(session_service, make_user, uow_factory):
    user = await make_user("alice")
    entity = await _entity(uow_factory, user.id)
    tokens = [(await session_service.issue(entity))[0] for _ in range(3)]

    assert await session_service.revoke(user.id) == 3
    for token in tokens:
        with pytest.raises(SessionRevokedException):
            await session_service.validate(token)
    assert await session_service.revoke(user.id) == 0


@pytest.mark.asyncio
async def test_inactive_user_fails_third_stage(session_service, make_user, uow_factory):
    user = await make_user("alice")
    token, _ = await session_service.issue(await _entity(uow_factory, user.id))

    async with uow_factory() as uow:
        entity = await uow.user_repository.get_by_id(user.id)
        entity.status = "inactive"
        await uow.user_repository.update(entity)

    with pytest.raises(UserInactiveException) as exc:
        await session_service.validate(token)
    assert exc.value.code == 401
    assert exc.value.message == "Invalid or expired credential"
