"""
数据库配置和连接管理

引擎在进程启动时通过 init_database() 显式创建，关闭时调用 shutdown_database()
释放连接池；导入本模块不会产生任何连接。
"""
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import settings
from core.logging_config import get_logger
from infrastructure.models import Base


logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "mysql": "mysql+aiomysql",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新 DATABASE__URL")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # SQLite 默认不启用外键约束
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def init_database(database_url: Optional[str] = None, **engine_kwargs) -> AsyncEngine:
    """创建全局引擎与会话工厂（重复调用返回已有引擎）"""
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    url = _build_async_url(database_url or settings.database.url)
    options = {"echo": settings.database.echo}
    if not url.startswith("sqlite"):
        options["pool_pre_ping"] = settings.database.pool_pre_ping
    options.update(engine_kwargs)

    engine = create_async_engine(url, **options)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    _engine = engine
    _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    logger.info("database_engine_initialized", dialect=engine.dialect.name)
    return engine


async def shutdown_database() -> None:
    """释放连接池"""
    global _engine, _session_factory

    if _engine is None:
        return
    try:
        await _engine.dispose()
        logger.info("database_engine_disposed")
    finally:
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")
    return _session_factory


async def create_tables() -> None:
    """根据 models 中定义的所有模型创建对应的数据库表"""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

