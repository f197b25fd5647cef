"""FastAPI middleware: request ID injection and rate limiting."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = structlog.get_logger(__name__)


def client_ip(request: Request) -> str:
    """Best-effort client address: proxy headers first, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Sliding-window counter per key. In-memory; resets on restart."""

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        self.max_requests = max_requests
        self.window = window_seconds
        self._hits: dict[str, list[float]] = {}

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def hit(self, key: str) -> bool:
        """Count one request for ``key``. Returns False when over the limit."""
        now = time.monotonic()
        if key not in self._hits:
            self._prune(now)
        recent = [t for t in self._hits.get(key, ()) if now - t < self.window]
        self._hits[key] = recent
        if len(recent) >= self.max_requests:
            return False
        recent.append(now)
        return True

    def _prune(self, now: float) -> None:
        # Keys whose newest hit has left the window hold no state worth keeping
        stale = [k for k, hits in self._hits.items() if not hits or now - hits[-1] >= self.window]
        for key in stale:
            del self._hits[key]

    def reset(self) -> None:
        self._hits.clear()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Adds a unique X-Request-ID header to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limit on paths starting with ``prefix`` (default: /api/)."""

    def __init__(
        self,
        app: object,
        max_requests: int = 120,
        window_seconds: int = 60,
        prefix: str = "/api/",
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._limiter = RateLimiter(max_requests, window_seconds)
        self._prefix = prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self._prefix):
            return await call_next(request)

        ip = client_ip(request)
        if not self._limiter.hit(ip):
            logger.warning("rate_limit_exceeded", ip=ip, path=request.url.path)
            return JSONResponse(
                {"detail": "Rate limit exceeded. Try again later."},
                status_code=429,
                headers={"Retry-After": str(self._limiter.window)},
            )
        return await call_next(request)
