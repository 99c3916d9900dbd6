"""项目主启动入口（配置 → 日志 → 存储 → 路由 → HTTP 监听）。"""

from __future__ import annotations

import logging
import sys

from scaffold.config import load_settings
from scaffold.exceptions import LoggerInitError, SettingsError
from scaffold.logger import setup_logging
from scaffold.services.process_supervisor import ProcessSupervisor


def main() -> int:
    """启动主控流程，返回进程退出码。"""

    try:
        settings = load_settings()
    except SettingsError as exc:
        print(f"init settings failed, err:{exc}", file=sys.stderr)
        return 1

    try:
        logger = setup_logging(settings.log)
    except LoggerInitError as exc:
        print(f"init logger failed, err:{exc}", file=sys.stderr)
        return 1

    logger.debug("logger init success...")
    logger.info(
        "启动参数: app=%s env=%s host=%s port=%d",
        settings.name,
        settings.env,
        settings.host,
        settings.port,
    )

    try:
        return ProcessSupervisor(settings, logger=logger).run()
    finally:
        logging.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
