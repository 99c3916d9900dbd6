"""测试公共 fixture。"""

from __future__ import annotations

import pytest

from scaffold.config import LogConfig, MySQLConfig, RedisConfig, Settings

ENV_KEYS = (
    "APP_NAME",
    "APP_ENV",
    "APP_HOST",
    "APP_PORT",
    "MYSQL_HOST",
    "MYSQL_PORT",
    "MYSQL_USER",
    "MYSQL_PASSWORD",
    "MYSQL_DB",
    "MYSQL_MAX_OPEN_CONNS",
    "MYSQL_MAX_IDLE_CONNS",
    "REDIS_HOST",
    "REDIS_PORT",
    "REDIS_PASSWORD",
    "REDIS_DB",
    "REDIS_POOL_SIZE",
    "LOG_LEVEL",
    "LOG_FILENAME",
    "LOG_MAX_SIZE",
    "LOG_MAX_BACKUPS",
    "LOG_MAX_AGE",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """清空配置相关环境变量，测试结束后恢复（含 .env 写入的值）。"""

    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def settings() -> Settings:
    """监听 127.0.0.1 随机端口的测试配置。"""

    return Settings(
        name="scaffold-test",
        env="test",
        host="127.0.0.1",
        port=0,
        mysql=MySQLConfig(
            host="127.0.0.1",
            port=3306,
            user="root",
            password="",
            db_name="scaffold",
            max_open_conns=20,
            max_idle_conns=5,
        ),
        redis=RedisConfig(host="127.0.0.1", port=6379, password="", db=0, pool_size=10),
        log=LogConfig(level="info", filename="", max_size_mb=1, max_backups=1, max_age_days=1),
    )
