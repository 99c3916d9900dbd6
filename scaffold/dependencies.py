"""FastAPI 依赖：从 app.state 取出启动时注入的存储句柄。"""

from __future__ import annotations

from fastapi import Request

from scaffold.db import MySQLStore
from scaffold.services.redis_service import RedisStore


def get_mysql(request: Request) -> MySQLStore:
    return request.app.state.mysql


def get_redis(request: Request) -> RedisStore:
    return request.app.state.redis
