"""MySQL 连接池初始化与连接管理。"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from scaffold.config import MySQLConfig
from scaffold.exceptions import StoreInitError

# max_open_conns <= 0 表示不限制连接总数
UNBOUNDED_OVERFLOW = -1


def build_mysql_url(cfg: MySQLConfig) -> URL:
    """构造 aiomysql 驱动的连接地址，用户名与密码会被正确转义。"""

    return URL.create(
        "mysql+aiomysql",
        username=cfg.user,
        password=cfg.password or None,
        host=cfg.host,
        port=cfg.port,
        database=cfg.db_name,
        query={"charset": "utf8mb4"},
    )


def pool_options(cfg: MySQLConfig) -> dict[str, int]:
    """把「最大打开 / 最大空闲连接数」换算为 SQLAlchemy 连接池参数。"""

    if cfg.max_open_conns <= 0:
        return {"pool_size": max(cfg.max_idle_conns, 1), "max_overflow": UNBOUNDED_OVERFLOW}

    idle = min(max(cfg.max_idle_conns, 1), cfg.max_open_conns)
    return {"pool_size": idle, "max_overflow": cfg.max_open_conns - idle}


class MySQLStore:
    """持有 AsyncEngine，只对外暴露查询、执行与关闭操作。"""

    name = "mysql"

    def __init__(
        self,
        cfg: MySQLConfig,
        *,
        engine_factory: Callable[..., AsyncEngine] = create_async_engine,
        logger: logging.Logger | None = None,
    ) -> None:
        self.cfg = cfg
        self._engine_factory = engine_factory
        self._logger = logger or logging.getLogger(__name__)
        self._engine: AsyncEngine | None = None

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("MySQL store is not initialized, call init() first")
        return self._engine

    async def init(self) -> None:
        """创建连接池并做一次往返探测，失败时抛出 StoreInitError。"""

        try:
            engine = self._engine_factory(build_mysql_url(self.cfg), pool_pre_ping=True, **pool_options(self.cfg))
        except (SQLAlchemyError, ImportError) as exc:
            self._logger.error("create DB engine failed", extra={"error": str(exc)})
            raise StoreInitError(self.name, str(exc)) from exc

        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            self._logger.error("connect to DB failed", extra={"error": str(exc)})
            await engine.dispose()
            raise StoreInitError(self.name, str(exc)) from exc

        self._engine = engine
        self._logger.info(
            "MySQL 连接池就绪 host=%s port=%d db=%s",
            self.cfg.host,
            self.cfg.port,
            self.cfg.db_name,
        )

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """执行写语句并提交，返回受影响行数。"""

        async with self._require_engine().begin() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return result.rowcount

    async def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        async with self._require_engine().connect() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return [dict(row) for row in result.mappings().all()]

    async def fetch_one(self, sql: str, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        async with self._require_engine().connect() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            row = result.mappings().first()
            return dict(row) if row is not None else None

    async def ping(self) -> bool:
        """探测数据库是否可用，不抛出异常。"""

        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            self._logger.warning("MySQL ping 失败: %s", exc)
            return False
        return True

    async def close(self) -> None:
        """释放连接池。"""

        if self._engine is not None:
            await self._engine.dispose()
            self._logger.info("MySQL 连接池已关闭")
        self._engine = None
