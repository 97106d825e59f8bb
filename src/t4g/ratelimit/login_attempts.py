"""Failed-login throttling for the identity layer (rolling window)."""

from __future__ import annotations

from t4g.config import get_settings
from t4g.ratelimit.guard import RateGuard, WindowMode

_SCOPE = "login"


async def record_login_attempt(guard: RateGuard, identifier: str) -> int:
    """Count one failed attempt; raises RateLimited once the window is full."""
    settings = get_settings()
    counts = await guard.check_and_consume(
        {_SCOPE: identifier.lower()},
        {_SCOPE: settings.login_attempt_limit},
        settings.login_attempt_window_seconds,
        WindowMode.ROLLING,
    )
    return counts[_SCOPE]


async def clear_login_attempts(guard: RateGuard, identifier: str) -> None:
    settings = get_settings()
    await guard.clear(_SCOPE, identifier.lower(), settings.login_attempt_window_seconds, WindowMode.ROLLING)
