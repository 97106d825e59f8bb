"""Rate limiting and cooldowns."""

from t4g.ratelimit.guard import RateGuard, WindowMode

__all__ = ["RateGuard", "WindowMode"]
