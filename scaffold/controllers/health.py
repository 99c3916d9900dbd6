"""存活与健康检查路由。"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse

from scaffold.db import MySQLStore
from scaffold.dependencies import get_mysql, get_redis
from scaffold.services.redis_service import RedisStore

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return "ok"


@router.get("/healthz")
async def healthz(
    mysql: MySQLStore = Depends(get_mysql),
    redis: RedisStore = Depends(get_redis),
) -> JSONResponse:
    """依次探测 MySQL 与 Redis，任一不可用返回 503。"""

    mysql_ok = await mysql.ping()
    redis_ok = await redis.ping()
    healthy = mysql_ok and redis_ok
    return JSONResponse(
        {"status": "ok" if healthy else "degraded", "mysql": mysql_ok, "redis": redis_ok},
        status_code=200 if healthy else 503,
    )
