"""FastAPI 应用构建（路由注册）。"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .config import Settings
from .controllers.health import router as health_router
from .db import MySQLStore
from .middleware.access_log import AccessLogMiddleware
from .middleware.recovery import RecoveryMiddleware
from .services.redis_service import RedisStore


def create_app(
    *,
    mysql: MySQLStore,
    redis: RedisStore,
    settings: Settings | None = None,
    logger: logging.Logger | None = None,
) -> FastAPI:
    """构建路由与中间件；存储句柄与 logger 由调用方初始化后注入。"""

    app = FastAPI(title=settings.name if settings is not None else "py-web-scaffold")
    app.state.mysql = mysql
    app.state.redis = redis
    app.state.settings = settings

    # 后添加的在外层：访问日志包住 Recovery，500 也会被记录
    app.add_middleware(RecoveryMiddleware, stack=True, log=logger)
    app.add_middleware(AccessLogMiddleware, log=logger)
    app.include_router(health_router)
    return app
