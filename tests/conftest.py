"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# 测试中降低哈希迭代次数以加快速度
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("DEBUG", "false")

import pytest
import pytest_asyncio
from sqlalchemy import select, func

from application.dto import UserCreateDTO, LoginDTO, IdentityDTO
from application.services.session_service import SessionService
from application.services.user_service import UserApplicationService
from infrastructure.database import init_database, shutdown_database, create_tables, get_session_factory
from infrastructure.models import UserSessionModel, LoginLogModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def database(tmp_path):
    """每个测试使用独立的 SQLite 文件库"""
    await init_database(f"sqlite+aiosqlite:///{tmp_path / 'user_center_test.db'}")
    await create_tables()
    yield
    await shutdown_database()


@pytest.fixture
def uow_factory(database):
    return SQLAlchemyUnitOfWork


@pytest.fixture
def session_service(uow_factory):
    return SessionService(uow_factory)


@pytest.fixture
def user_service(uow_factory, session_service):
    return UserApplicationService(uow_factory, session_service=session_service)


@pytest_asyncio.fixture
async def make_user(user_service, uow_factory):
    """注册用户，可选直接设置角色（绕过接口）"""

    async def _make(username: str, password: str = "secret1", role: str = "user"):
        user = await user_service.register(
            UserCreateDTO(username=username, email=f"{username}@example.com", password=password)
        )
        if role != "user":
            async with uow_factory() as uow:
                entity = await uow.user_repository.get_by_id(user.id)
                entity.role = role
                await uow.user_repository.update(entity)
            user = await user_service.get_user(user.id)
        return user

    return _make


@pytest_asyncio.fixture
async def login(user_service):
    async def _login(identifier: str, password: str = "secret1"):
        return await user_service.login(LoginDTO(username=identifier, password=password))

    return _login


@pytest.fixture
def as_identity():
    """UserResponseDTO -> IdentityDTO，用于以某个用户身份调用服务"""

    def _convert(user) -> IdentityDTO:
        return IdentityDTO(
            id=user.id,
            username=user.username,
            email=user.email,
            nickname=user.nickname,
            avatar=user.avatar,
            role=user.role,
            status=user.status,
        )

    return _convert


@pytest_asyncio.fixture
async def count_rows(database):
    """直接统计某用户在会话表或登录日志表中的行数"""
    tables = {"sessions": UserSessionModel, "login_logs": LoginLogModel}

    async def _count(table: str, user_id: int) -> int:
        model = tables[table]
        async with get_session_factory()() as session:
            result = await session.execute(
                select(func.count(model.id)).where(model.user_id == user_id)
            )
            return int(result.scalar_one())

    return _count
