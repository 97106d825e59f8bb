"""Process-wide Redis client for counters, cooldowns and event publishing."""

import redis.asyncio as redis

_client: redis.Redis | None = None

# Enough for the rate guard's WATCH pipelines under request bursts
_MAX_CONNECTIONS = 50


async def init_redis(url: str, socket_timeout: float | None = None) -> None:
    """Connect the shared client. Store timeouts surface as ``redis.TimeoutError``."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=_MAX_CONNECTIONS,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )


def set_redis(client: redis.Redis | None) -> None:
    """Install an already-built client (tests use an in-process fake)."""
    global _client  # noqa: PLW0603
    _client = client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """FastAPI dependency; raises RuntimeError before ``init_redis``."""
    if _client is None:
        msg = "Redis client is not set up; call init_redis() first"
        raise RuntimeError(msg)
    return _client


async def redis_available() -> bool:
    """True when the counter store answers a PING."""
    try:
        return bool(await get_redis().ping())
    except (RuntimeError, redis.RedisError, OSError):
        return False
