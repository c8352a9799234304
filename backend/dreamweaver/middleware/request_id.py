"""
DreamWeaver Backend — Request ID Middleware
============================================

What:  Gives every request a short correlation ID and echoes it back in the
       X-Request-ID response header.
How:   A client-supplied X-Request-ID is reused when it looks sane (so a
       mobile client can correlate its own logs); otherwise a new one is
       generated. The ID is kept in a ContextVar for loggers and in
       request.state for exception handlers, which put it in error bodies.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Client IDs end up in logs; only accept short, printable tokens
_CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-_.]{1,64}$")

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


def resolve_request_id(header_value: Optional[str]) -> str:
    """Reuse a well-formed client ID, otherwise mint a fresh one."""
    if header_value and _CLIENT_ID_PATTERN.match(header_value):
        return header_value
    return new_request_id()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns request.state.request_id and sets the X-Request-ID response header."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
