"""结构化日志初始化。"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import logging.handlers
import os
from pathlib import Path
import sys
import time
from typing import Any

from pythonjsonlogger import jsonlogger

from scaffold.config import LogConfig
from scaffold.exceptions import LoggerInitError

APP_LOGGER_NAME = "scaffold"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}


def parse_level(value: str) -> int:
    """把配置里的级别字符串解析为 logging 级别。"""

    level = _LEVELS.get(value.strip().lower())
    if level is None:
        raise LoggerInitError(f"unrecognized log level: {value!r}")
    return level


class JsonFormatter(jsonlogger.JsonFormatter):
    """每条日志输出一行 JSON：time / level / caller / logger / msg，以及 extra 字段。"""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "time", "levelname": "level", "name": "logger", "message": "msg"},
            json_ensure_ascii=False,
        )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname.upper()
        log_record["caller"] = f"{record.filename}:{record.lineno}"
        log_record.pop("taskName", None)

        stacktrace = log_record.pop("exc_info", None) or log_record.pop("stack_info", None)
        log_record.pop("stack_info", None)
        if stacktrace:
            log_record["stacktrace"] = stacktrace


class RetentionRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """按大小切割，并在切割时清理超过保留天数的备份文件。

    backup_count 为 0 时仍按大小切割并保留全部备份，只按保留天数清理。
    """

    def __init__(self, filename: str | os.PathLike[str], *, max_bytes: int, backup_count: int, max_age_days: int) -> None:
        super().__init__(filename, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        self.max_age_days = max_age_days

    def _backups(self) -> dict[int, Path]:
        base = Path(self.baseFilename)
        backups: dict[int, Path] = {}
        for backup in base.parent.glob(f"{base.name}.*"):
            suffix = backup.name[len(base.name) + 1 :]
            if suffix.isdigit():
                backups[int(suffix)] = backup
        return backups

    def _rollover_keep_all(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore[assignment]

        base = Path(self.baseFilename)
        for index, backup in sorted(self._backups().items(), reverse=True):
            backup.rename(base.with_name(f"{base.name}.{index + 1}"))
        if base.exists():
            base.rename(base.with_name(f"{base.name}.1"))
        if not self.delay:
            self.stream = self._open()

    def doRollover(self) -> None:
        if self.backupCount > 0:
            super().doRollover()
        else:
            self._rollover_keep_all()
        self.prune_expired_backups()

    def prune_expired_backups(self, *, now: float | None = None) -> list[Path]:
        """删除过期备份，返回被删除的文件列表。"""

        if self.max_age_days <= 0:
            return []

        cutoff = (now if now is not None else time.time()) - self.max_age_days * 86400
        removed: list[Path] = []
        for backup in self._backups().values():
            try:
                if backup.stat().st_mtime < cutoff:
                    backup.unlink()
                    removed.append(backup)
            except FileNotFoundError:
                continue
        return removed


def build_handler(cfg: LogConfig) -> logging.Handler:
    """根据配置构造日志写入器：文件（带切割）或 stderr。"""

    if not cfg.filename:
        return logging.StreamHandler(sys.stderr)

    path = Path(cfg.filename)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return RetentionRotatingFileHandler(
            path,
            max_bytes=max(cfg.max_size_mb, 0) * 1024 * 1024,
            backup_count=max(cfg.max_backups, 0),
            max_age_days=max(cfg.max_age_days, 0),
        )
    except OSError as exc:
        raise LoggerInitError(f"cannot open log file {path}: {exc}") from exc


def setup_logging(cfg: LogConfig) -> logging.Logger:
    """初始化根 logger 并返回应用 logger。

    根 logger 上已有的 handler 会被替换，uvicorn 等第三方日志也统一走 JSON 输出。
    """

    level = parse_level(cfg.level)
    handler = build_handler(cfg)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()
    root.addHandler(handler)
    root.setLevel(level)

    return logging.getLogger(APP_LOGGER_NAME)
