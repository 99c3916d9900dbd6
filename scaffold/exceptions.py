"""启动与关停阶段的错误分类。"""

from __future__ import annotations


class ScaffoldError(Exception):
    """脚手架内所有可预期错误的基类。"""


class SettingsError(ScaffoldError):
    """配置加载失败。"""


class LoggerInitError(ScaffoldError):
    """日志初始化失败（例如非法的日志级别）。"""


class StoreInitError(ScaffoldError):
    """数据存储（MySQL / Redis）初始化失败。"""

    def __init__(self, store: str, message: str) -> None:
        super().__init__(f"{store}: {message}")
        self.store = store


class ListenerStartError(ScaffoldError):
    """HTTP 监听启动失败，或监听任务意外退出。"""


class ShutdownError(ScaffoldError):
    """优雅关机过程中监听任务异常退出。"""


class ShutdownTimeoutError(ShutdownError):
    """优雅关机超过截止时间。"""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"graceful shutdown exceeded {timeout:g}s deadline")
        self.timeout = timeout
