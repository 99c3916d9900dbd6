"""应用配置（通过 .env 与环境变量覆盖）。"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from dotenv import load_dotenv

from scaffold.exceptions import SettingsError

BASE_DIR = Path(__file__).resolve().parents[1]


@dataclass(frozen=True, slots=True)
class MySQLConfig:
    """MySQL 连接池配置。"""

    host: str
    port: int
    user: str
    password: str
    db_name: str
    max_open_conns: int
    max_idle_conns: int


@dataclass(frozen=True, slots=True)
class RedisConfig:
    """Redis 连接配置。"""

    host: str
    port: int
    password: str
    db: int
    pool_size: int


@dataclass(frozen=True, slots=True)
class LogConfig:
    """日志配置，filename 为空时输出到 stderr。"""

    level: str
    filename: str
    max_size_mb: int
    max_backups: int
    max_age_days: int


@dataclass(frozen=True, slots=True)
class Settings:
    """进程级只读配置。"""

    name: str
    env: str
    host: str
    port: int
    mysql: MySQLConfig
    redis: RedisConfig
    log: LogConfig


def _to_int(name: str, default: int, *, minimum: int = 0) -> int:
    """解析整数环境变量，非法值直接报错。"""

    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = int(raw.strip())
    except ValueError as exc:
        raise SettingsError(f"{name} must be an integer, got {raw!r}") from exc
    if parsed < minimum:
        raise SettingsError(f"{name} must be >= {minimum}, got {parsed}")
    return parsed


def _to_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def load_settings(env_file: str | os.PathLike[str] | None = None) -> Settings:
    """读取 .env 与环境变量，构造配置对象。

    显式传入的 env_file 不存在时视为配置加载失败；
    默认的项目根目录 .env 缺失则直接使用环境变量与默认值。
    """

    if env_file is not None:
        path = Path(env_file)
        if not path.is_file():
            raise SettingsError(f"env file not found: {path}")
        load_dotenv(path)
    else:
        load_dotenv(BASE_DIR / ".env")

    return Settings(
        name=_to_str("APP_NAME", "py-web-scaffold"),
        env=_to_str("APP_ENV", "dev"),
        host=_to_str("APP_HOST", "0.0.0.0"),
        port=_to_int("APP_PORT", 8080, minimum=0),
        mysql=MySQLConfig(
            host=_to_str("MYSQL_HOST", "127.0.0.1"),
            port=_to_int("MYSQL_PORT", 3306, minimum=1),
            user=_to_str("MYSQL_USER", "root"),
            password=os.getenv("MYSQL_PASSWORD", ""),
            db_name=_to_str("MYSQL_DB", "scaffold"),
            max_open_conns=_to_int("MYSQL_MAX_OPEN_CONNS", 200, minimum=0),
            max_idle_conns=_to_int("MYSQL_MAX_IDLE_CONNS", 50, minimum=0),
        ),
        redis=RedisConfig(
            host=_to_str("REDIS_HOST", "127.0.0.1"),
            port=_to_int("REDIS_PORT", 6379, minimum=1),
            password=os.getenv("REDIS_PASSWORD", ""),
            db=_to_int("REDIS_DB", 0, minimum=0),
            pool_size=_to_int("REDIS_POOL_SIZE", 100, minimum=1),
        ),
        log=LogConfig(
            level=_to_str("LOG_LEVEL", "info"),
            filename=_to_str("LOG_FILENAME", ""),
            max_size_mb=_to_int("LOG_MAX_SIZE", 200, minimum=0),
            max_backups=_to_int("LOG_MAX_BACKUPS", 7, minimum=0),
            max_age_days=_to_int("LOG_MAX_AGE", 30, minimum=0),
        ),
    )
