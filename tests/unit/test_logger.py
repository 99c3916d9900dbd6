from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import sys
import time
from typing import Iterator

import pytest

from scaffold.config import LogConfig
from scaffold.exceptions import LoggerInitError
from scaffold.logger import (
    APP_LOGGER_NAME,
    JsonFormatter,
    RetentionRotatingFileHandler,
    parse_level,
    setup_logging,
)


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, JsonFormatter):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def _record(msg: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="scaffold.test",
        level=logging.WARNING,
        pathname="/srv/scaffold/handlers.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        ("warn", logging.WARNING),
        (" error ", logging.ERROR),
        ("fatal", logging.CRITICAL),
    ],
)
def test_parse_level_accepts_known_names(raw: str, expected: int) -> None:
    assert parse_level(raw) == expected


@pytest.mark.unit
def test_parse_level_rejects_unknown_name() -> None:
    with pytest.raises(LoggerInitError, match="verbose"):
        parse_level("verbose")


@pytest.mark.unit
def test_json_formatter_emits_core_fields_and_extras() -> None:
    line = JsonFormatter().format(_record("db ready", status=200, path="/healthz"))
    payload = json.loads(line)

    assert payload["level"] == "WARNING"
    assert payload["caller"] == "handlers.py:42"
    assert payload["msg"] == "db ready"
    assert payload["logger"] == "scaffold.test"
    assert payload["status"] == 200
    assert payload["path"] == "/healthz"
    assert "T" in payload["time"]


@pytest.mark.unit
def test_json_formatter_includes_stacktrace() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord("scaffold", logging.ERROR, __file__, 1, "failed", (), exc_info=sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))

    assert "ValueError: boom" in payload["stacktrace"]


@pytest.mark.unit
def test_setup_logging_writes_json_lines_to_file(tmp_path: Path, restore_root_logger: None) -> None:
    log_file = tmp_path / "logs" / "app.log"
    logger = setup_logging(LogConfig(level="info", filename=str(log_file), max_size_mb=1, max_backups=2, max_age_days=7))

    logger.debug("hidden")
    logger.info("visible", extra={"component": "test"})
    for handler in logging.getLogger().handlers:
        handler.flush()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert logger.name == APP_LOGGER_NAME
    assert len(lines) == 1
    assert json.loads(lines[0])["msg"] == "visible"
    assert json.loads(lines[0])["component"] == "test"


@pytest.mark.unit
def test_setup_logging_replaces_root_handlers(tmp_path: Path, restore_root_logger: None) -> None:
    setup_logging(LogConfig(level="info", filename="", max_size_mb=0, max_backups=0, max_age_days=0))
    setup_logging(LogConfig(level="error", filename=str(tmp_path / "x.log"), max_size_mb=5, max_backups=3, max_age_days=0))

    root = logging.getLogger()
    assert len(root.handlers) == 1
    handler = root.handlers[0]
    assert isinstance(handler, RetentionRotatingFileHandler)
    assert handler.maxBytes == 5 * 1024 * 1024
    assert handler.backupCount == 3
    assert root.level == logging.ERROR


@pytest.mark.unit
def test_setup_logging_rejects_bad_level_before_touching_handlers(restore_root_logger: None) -> None:
    before = list(logging.getLogger().handlers)

    with pytest.raises(LoggerInitError):
        setup_logging(LogConfig(level="loud", filename="", max_size_mb=0, max_backups=0, max_age_days=0))

    assert logging.getLogger().handlers == before


@pytest.mark.unit
def test_prune_expired_backups_removes_only_old_numbered_files(tmp_path: Path) -> None:
    base = tmp_path / "app.log"
    handler = RetentionRotatingFileHandler(base, max_bytes=1024, backup_count=5, max_age_days=1)
    try:
        old = tmp_path / "app.log.1"
        fresh = tmp_path / "app.log.2"
        unrelated = tmp_path / "app.log.bak"
        for path in (old, fresh, unrelated):
            path.write_text("x", encoding="utf-8")
        now = time.time()
        two_days_ago = now - 2 * 86400
        os.utime(old, (two_days_ago, two_days_ago))
        os.utime(unrelated, (two_days_ago, two_days_ago))

        removed = handler.prune_expired_backups(now=now)
    finally:
        handler.close()

    assert removed == [old]
    assert not old.exists()
    assert fresh.exists()
    assert unrelated.exists()


@pytest.mark.unit
def test_rollover_keeps_backup_count(tmp_path: Path) -> None:
    base = tmp_path / "app.log"
    handler = RetentionRotatingFileHandler(base, max_bytes=64, backup_count=2, max_age_days=0)
    handler.setFormatter(JsonFormatter())
    try:
        for index in range(20):
            handler.emit(_record(f"line {index} " + "x" * 40))
    finally:
        handler.close()

    assert base.exists()
    assert (tmp_path / "app.log.1").exists()
    assert (tmp_path / "app.log.2").exists()
    assert not (tmp_path / "app.log.3").exists()


@pytest.mark.unit
def test_rollover_without_backup_limit_keeps_every_backup(tmp_path: Path) -> None:
    base = tmp_path / "app.log"
    handler = RetentionRotatingFileHandler(base, max_bytes=200, backup_count=0, max_age_days=0)
    handler.setFormatter(JsonFormatter())
    try:
        for index in range(50):
            handler.emit(_record(f"line {index} " + "x" * 10))
    finally:
        handler.close()

    backups = sorted(int(path.name.rsplit(".", 1)[1]) for path in tmp_path.glob("app.log.*"))
    assert base.stat().st_size <= 200
    assert len(backups) >= 10
    assert backups == list(range(1, len(backups) + 1))
    newest = json.loads((tmp_path / "app.log.1").read_text(encoding="utf-8").splitlines()[-1])
    oldest = json.loads((tmp_path / f"app.log.{backups[-1]}").read_text(encoding="utf-8").splitlines()[0])
    assert oldest["msg"].startswith("line 0 ")
    assert newest["msg"] != oldest["msg"]
