"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import auth, user
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.database import init_database, shutdown_database, create_tables


API_PREFIX = "/api/v1/user-center"

# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：启动时建立连接池，关闭时释放"""
    await init_database()
    if settings.DEBUG:
        # 开发环境自动建表；生产环境由外部流程管理表结构
        await create_tables()
        logger.info("database_tables_created")
    logger.info("application_started", environment=settings.ENVIRONMENT)

    yield

    await shutdown_database()
    logger.info("application_shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # 后添加的中间件在外层；RequestID 先于日志中间件执行，日志可拿到 request_id
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth.router, prefix=API_PREFIX)
    app.include_router(user.router, prefix=API_PREFIX)

    @app.get("/health", tags=["系统"])
    async def health_check():
        return success_response(
            data={"status": "healthy", "version": settings.VERSION},
            message="Service is healthy",
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
