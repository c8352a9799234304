"""
DreamWeaver Backend — Rate Limiting Middleware
===============================================

What:  Per-client-IP sliding window limiter in front of the API.
How:   SlidingWindowLimiter keeps a deque of request timestamps per key.
       Timestamps older than the window are dropped on each hit; a hit that
       would exceed the limit is refused with the seconds until the oldest
       timestamp leaves the window.

Scope:
    State is in process memory, so each worker enforces its own limit.
    /health and the API docs are never limited.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from dreamweaver.config import settings
from dreamweaver.exceptions import RateLimitExceededError
from dreamweaver.middleware.request_id import REQUEST_ID_HEADER, resolve_request_id

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """
    Counts hits per key over the trailing `window_seconds`.

    Keys with no hits inside the window are pruned every `prune_every` hits
    so one-off clients do not accumulate.
    """

    def __init__(self, max_requests: int, window_seconds: int, prune_every: int = 1000):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prune_every = prune_every
        self._hits: Dict[str, Deque[float]] = {}
        self._since_prune = 0

    def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
        """
        Record a hit for `key`.

        Returns:
            None when allowed, otherwise the Retry-After value in whole seconds
            (the refused hit is not recorded).
        """
        now = time.monotonic() if now is None else now
        window_start = now - self.window_seconds
        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.max_requests:
            return max(1, int(hits[0] + self.window_seconds - now) + 1)

        hits.append(now)
        self._since_prune += 1
        if self._since_prune >= self.prune_every:
            self.prune(now)
        return None

    def prune(self, now: Optional[float] = None) -> int:
        """Drop keys whose newest hit is outside the window; returns how many."""
        now = time.monotonic() if now is None else now
        window_start = now - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in stale:
            del self._hits[key]
        self._since_prune = 0
        if stale:
            logger.debug("Pruned %d idle rate-limit keys", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._hits)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies a SlidingWindowLimiter keyed by client IP.

    Refused requests get 429 with a Retry-After header and the standard
    error body.
    """

    EXCLUDED_PATHS = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})

    def __init__(self, app, limiter: Optional[SlidingWindowLimiter] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.limiter = limiter or SlidingWindowLimiter(
            max_requests=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        retry_after = self.limiter.hit(client_ip)
        if retry_after is None:
            return await call_next(request)

        logger.warning(
            "Rate limit exceeded for IP %s (%d requests per %ds)",
            client_ip,
            self.limiter.max_requests,
            self.limiter.window_seconds,
        )
        exc = RateLimitExceededError(retry_after=retry_after)
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        return JSONResponse(
            status_code=429,
            content={
                "error": exc.error_kind,
                "message": exc.message,
                "details": {"retry_after": retry_after},
                "request_id": rid,
            },
            headers={"Retry-After": str(retry_after), REQUEST_ID_HEADER: rid},
        )
