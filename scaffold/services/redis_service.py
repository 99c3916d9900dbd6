"""Redis 连接服务。"""

from __future__ import annotations

import logging
from typing import Any, Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from scaffold.config import RedisConfig
from scaffold.exceptions import StoreInitError


class RedisStore:
    """持有进程级 Redis 客户端，只暴露业务需要的操作。"""

    name = "redis"

    def __init__(
        self,
        cfg: RedisConfig,
        *,
        client_factory: Callable[..., Any] = Redis,
        logger: logging.Logger | None = None,
    ) -> None:
        self.cfg = cfg
        self._client_factory = client_factory
        self._logger = logger or logging.getLogger(__name__)
        self._client: Any = None

    @property
    def initialized(self) -> bool:
        return self._client is not None

    def _require_client(self) -> Any:
        if self._client is None:
            raise RuntimeError("Redis store is not initialized, call init() first")
        return self._client

    async def init(self) -> None:
        """创建客户端并 PING 一次，失败时抛出 StoreInitError。"""

        client = self._client_factory(
            host=self.cfg.host,
            port=self.cfg.port,
            password=self.cfg.password or None,
            db=self.cfg.db,
            max_connections=self.cfg.pool_size,
            encoding="utf-8",
            decode_responses=True,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            self._logger.error("connect to Redis failed", extra={"error": str(exc)})
            await client.aclose()
            raise StoreInitError(self.name, str(exc)) from exc

        self._client = client
        self._logger.info("Redis 连接就绪 host=%s port=%d db=%d", self.cfg.host, self.cfg.port, self.cfg.db)

    async def get(self, key: str) -> str | None:
        return await self._require_client().get(key)

    async def set(self, key: str, value: str, *, ex: int | None = None) -> bool:
        return bool(await self._require_client().set(key, value, ex=ex))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._require_client().delete(*keys))

    async def ping(self) -> bool:
        """探测 Redis 是否可用，不抛出异常。"""

        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            self._logger.warning("Redis ping 失败: %s", exc)
            return False

    async def close(self) -> None:
        """关闭 Redis 客户端连接。"""

        if self._client is not None:
            await self._client.aclose()
            self._logger.info("Redis 连接已关闭")
        self._client = None
