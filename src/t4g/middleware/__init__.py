"""HTTP middleware for the scan and rewards API."""

from fastapi import FastAPI

from t4g.config import Settings
from t4g.middleware.cors import setup_cors
from t4g.middleware.error_handler import setup_error_handlers
from t4g.middleware.logging import setup_logging
from t4g.middleware.rate_limit import RateLimitMiddleware
from t4g.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, domain error rendering and the request pipeline.

    A request passes CORS, then gets its request id, then hits the per-IP
    quota. Starlette wraps each added middleware around the previous ones,
    so they are added innermost first. A 429 from the quota therefore
    already carries the request id and the CORS headers.
    """
    setup_logging(settings)
    setup_error_handlers(app)

    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
