"""请求访问日志中间件。"""

from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


def get_request_ip(request: Request) -> str:
    """优先取 X-Forwarded-For 的第一个地址。"""

    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return ""


class AccessLogMiddleware(BaseHTTPMiddleware):
    """每个请求结束后记录一条结构化访问日志。"""

    def __init__(self, app, *, log: logging.Logger | None = None):
        super().__init__(app)
        self.log = log or logger

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        path = request.url.path
        response = await call_next(request)

        self.log.info(
            path,
            extra={
                "status": response.status_code,
                "method": request.method,
                "path": path,
                "query": request.url.query,
                "ip": get_request_ip(request),
                "user_agent": request.headers.get("user-agent", ""),
                "cost": round(time.perf_counter() - start, 6),
                "errors": getattr(request.state, "recovered_error", ""),
            },
        )
        return response
