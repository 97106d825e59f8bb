"""Global per-IP request rate limiting backed by the Redis rate guard."""

from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from t4g.errors import RateLimited, TransientFailure
from t4g.ratelimit.guard import RateGuard, WindowMode
from t4g.redis_client import get_redis

# Paths exempt from rate limiting
_EXEMPT_PATHS = frozenset({"/health", "/ready"})

logger = structlog.get_logger()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window request quota per client IP."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        try:
            redis = get_redis()
        except RuntimeError:
            # Redis not initialized: let the request through without rate limiting
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        guard = RateGuard(redis)
        try:
            counts = await guard.check_and_consume(
                {"http": client_ip},
                {"http": self.requests_per_window},
                self.window_seconds,
                WindowMode.FIXED,
            )
        except RateLimited:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later.", "code": "rate_limited"},
                headers={
                    "Retry-After": str(self.window_seconds),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Limit": str(self.requests_per_window),
                },
            )
        except TransientFailure:
            # Counter store unreachable: serve the request unthrottled
            logger.warning("rate_limit_unavailable", client_ip=client_ip)
            return await call_next(request)

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_per_window - counts["http"]))
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_window)
        return response
