"""
DreamWeaver Backend — Access Log Middleware
============================================

What:  One structured log line per request on the "dreamweaver.access" logger.
How:   Measures wall-clock duration around the downstream app and logs at a
       level chosen by status class (5xx ERROR, 4xx WARNING, else INFO).
       Fields are also attached as `extra` so a JSON formatter can index them.

Logged: method, path, status, duration_ms, request_id, client_ip, user_agent.
Never logged: request bodies (dream journals are private) and the
Authorization header.

/health is skipped; probes hit it every few seconds.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from dreamweaver.middleware.request_id import request_id_var

logger = logging.getLogger("dreamweaver.access")

QUIET_PATHS = frozenset({"/health"})


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        rid = getattr(request.state, "request_id", None) or request_id_var.get("")
        client_ip = request.client.host if request.client else "unknown"
        status = response.status_code

        logger.log(
            level_for_status(status),
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "user_agent": request.headers.get("user-agent", ""),
            },
        )
        return response
