"""进程启动与优雅关机编排服务。"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, contextmanager
import logging
import signal
import socket
from typing import Any, Callable, Iterator, Protocol

import uvicorn
from fastapi import FastAPI

from scaffold.config import Settings
from scaffold.db import MySQLStore
from scaffold.exceptions import ListenerStartError, ScaffoldError, ShutdownError, ShutdownTimeoutError
from scaffold.main import create_app
from scaffold.services.redis_service import RedisStore


SHUTDOWN_TIMEOUT_SECONDS = 5.0
STARTUP_POLL_INTERVAL = 0.05
TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Store(Protocol):
    """存储连接器需要提供的最小生命周期接口。"""

    name: str

    async def init(self) -> None: ...

    async def close(self) -> None: ...


class ListenerServer(uvicorn.Server):
    """信号由主控统一接管的 uvicorn Server。"""

    def install_signal_handlers(self) -> None:
        return None

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def bind_listener(host: str, port: int, *, backlog: int = 2048) -> socket.socket:
    """绑定监听 socket，失败时抛出 ListenerStartError。"""

    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
        sock.setblocking(False)
    except OSError as exc:
        sock.close()
        raise ListenerStartError(f"listen on {host}:{port} failed: {exc}") from exc
    return sock


def _task_error(task: asyncio.Task[Any]) -> BaseException | None:
    if task.cancelled():
        return None
    return task.exception()


class ProcessSupervisor:
    """负责按顺序初始化存储、启动 HTTP 监听，并在收到终止信号后优雅关机。

    启动顺序：MySQL → Redis → 构建路由 → 后台任务启动监听。
    关机顺序：通知监听停止并在截止时间内等待在途请求 → 释放存储连接。
    任何一步初始化失败都不会启动监听；已初始化的存储按逆序释放。
    """

    def __init__(
        self,
        settings: Settings,
        *,
        mysql: Store | None = None,
        redis: Store | None = None,
        app_factory: Callable[..., FastAPI] = create_app,
        server_factory: Callable[[uvicorn.Config], uvicorn.Server] = ListenerServer,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self._logger = logger or logging.getLogger(__name__)
        self.mysql = mysql if mysql is not None else MySQLStore(settings.mysql, logger=self._logger)
        self.redis = redis if redis is not None else RedisStore(settings.redis, logger=self._logger)
        self._app_factory = app_factory
        self._server_factory = server_factory
        self.shutdown_timeout = shutdown_timeout

        self._stores = AsyncExitStack()
        self._shutdown_event = asyncio.Event()
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._installed_signals: list[signal.Signals] = []

    @property
    def server(self) -> uvicorn.Server | None:
        return self._server

    @property
    def listening_port(self) -> int | None:
        """实际监听端口（配置端口为 0 时由系统分配）。"""

        if self._socket is None or self._socket.fileno() == -1:
            return None
        return int(self._socket.getsockname()[1])

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()

    async def _init_store(self, store: Store) -> None:
        await store.init()
        self._stores.push_async_callback(store.close)

    async def start(self) -> None:
        """初始化存储并在后台任务中启动 HTTP 监听。"""

        await self._init_store(self.mysql)
        await self._init_store(self.redis)

        app = self._app_factory(mysql=self.mysql, redis=self.redis, settings=self.settings, logger=self._logger)
        self._socket = bind_listener(self.settings.host, self.settings.port)
        config = uvicorn.Config(
            app,
            host=self.settings.host,
            port=self.settings.port,
            lifespan="off",
            log_config=None,
            access_log=False,
        )
        self._server = self._server_factory(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[self._socket]), name="http-listener")
        try:
            await self._wait_started()
        except ListenerStartError:
            self._socket.close()
            raise
        self._logger.info("HTTP 监听已启动 host=%s port=%s", self.settings.host, self.listening_port)

    async def _wait_started(self) -> None:
        assert self._server is not None and self._serve_task is not None
        while not self._server.started:
            if self._serve_task.done():
                raise ListenerStartError("HTTP listener exited before startup completed") from _task_error(
                    self._serve_task
                )
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

    def request_shutdown(self, signum: int | None = None) -> None:
        """请求优雅关机（信号回调与进程内调用共用）。"""

        if signum is not None:
            self._logger.info("收到终止信号 %s", signal.Signals(signum).name)
        self._shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        """只关注 SIGINT 与 SIGTERM 两个终止信号。"""

        loop = asyncio.get_running_loop()
        for sig in TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, int(sig))
            except NotImplementedError:
                # Windows 事件循环不支持 add_signal_handler
                signal.signal(sig, lambda signum, _frame: loop.call_soon_threadsafe(self.request_shutdown, signum))
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        self._installed_signals.clear()

    async def wait_for_stop(self) -> None:
        """阻塞直到收到终止信号；监听任务意外退出时抛出 ListenerStartError。"""

        assert self._serve_task is not None
        waiter = asyncio.create_task(self._shutdown_event.wait(), name="shutdown-signal")
        try:
            await asyncio.wait({waiter, self._serve_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

        if self._serve_task.done() and not self._shutdown_event.is_set():
            raise ListenerStartError("HTTP listener stopped unexpectedly") from _task_error(self._serve_task)

    async def shutdown(self) -> None:
        """通知监听停止接收新连接，并在截止时间内等待在途请求完成。

        超时后强制结束监听任务并抛出 ShutdownTimeoutError。
        监听任务在停止过程中自身抛错时抛出 ShutdownError。
        """

        if self._server is None or self._serve_task is None:
            return

        self._server.should_exit = True
        try:
            await asyncio.wait_for(asyncio.shield(self._serve_task), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            self._server.force_exit = True
            self._serve_task.cancel()
            await asyncio.wait({self._serve_task})
            raise ShutdownTimeoutError(self.shutdown_timeout) from None
        except Exception as exc:
            raise ShutdownError(f"HTTP listener failed while stopping: {exc}") from exc
        finally:
            if self._socket is not None:
                self._socket.close()

    async def close_stores(self) -> None:
        """按初始化逆序释放存储连接，重复调用不会再次关闭。"""

        await self._stores.aclose()

    async def serve(self) -> int:
        """完整生命周期：启动、等待信号、优雅关机、释放存储，返回退出码。"""

        exit_code = 0
        try:
            try:
                await self.start()
            except ScaffoldError as exc:
                self._logger.error("启动失败: %s", exc)
                return 1

            self._install_signal_handlers()
            try:
                await self.wait_for_stop()
                self._logger.info("Shutdown Server ...")
                await self.shutdown()
                self._logger.info("Server exiting")
            except ListenerStartError as exc:
                self._logger.critical("listen: %s", exc, exc_info=exc.__cause__)
                exit_code = 1
            except ShutdownTimeoutError as exc:
                self._logger.critical("Server Shutdown", extra={"error": str(exc)})
                exit_code = 1
            except ShutdownError as exc:
                self._logger.critical("Server Shutdown", exc_info=exc.__cause__, extra={"error": str(exc)})
                exit_code = 1
            finally:
                self._remove_signal_handlers()
        finally:
            if self._socket is not None:
                self._socket.close()
            await self.close_stores()
        return exit_code

    def run(self) -> int:
        """在新的事件循环中运行 serve()。"""

        return asyncio.run(self.serve())
