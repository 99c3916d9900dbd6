"""未处理异常兜底中间件。"""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

logger = logging.getLogger(__name__)

# 客户端已断开时不需要堆栈
_BROKEN_CONNECTION_ERRORS = (BrokenPipeError, ConnectionResetError)


def describe_request(request: Request) -> str:
    """生成不含请求体的请求摘要。"""

    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return f"{request.method} {target} HTTP/{request.scope.get('http_version', '1.1')}"


class RecoveryMiddleware(BaseHTTPMiddleware):
    """捕获处理链中的异常，记录日志并返回 500。"""

    def __init__(self, app, *, stack: bool = True, log: logging.Logger | None = None):
        super().__init__(app)
        self.stack = stack
        self.log = log or logger

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except _BROKEN_CONNECTION_ERRORS as exc:
            request.state.recovered_error = repr(exc)
            self.log.error(
                request.url.path,
                extra={"error": repr(exc), "request": describe_request(request)},
            )
            return Response(status_code=500)
        except Exception as exc:
            request.state.recovered_error = repr(exc)
            self.log.error(
                "[Recovery from panic]",
                exc_info=exc if self.stack else None,
                extra={"error": repr(exc), "request": describe_request(request)},
            )
            return PlainTextResponse("Internal Server Error", status_code=500)
