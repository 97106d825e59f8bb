"""Redis-backed rate limiting and cooldowns.

Counters are plain Redis integers. A check-and-consume call WATCHes every
scope key, reads the counts, and only if all are under their limits
increments them inside MULTI/EXEC. A concurrent writer invalidates the
WATCH and the whole check is retried, so a rejected caller is never counted
and concurrent callers never lose an increment.

Redis timeouts and connection errors leave every method as TransientFailure.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from enum import Enum

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from t4g.errors import CooldownActive, RateLimited, TransientFailure

logger = logging.getLogger(__name__)

_MAX_WATCH_RETRIES = 10


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Surface Redis timeouts and connection failures as TransientFailure."""
    try:
        yield
    except RedisError as exc:
        logger.warning("Counter store failure during %s: %s", operation, exc)
        raise TransientFailure("Counter store unavailable, please retry") from exc


class WindowMode(str, Enum):
    """How a counter window is anchored."""

    FIXED = "fixed"  # calendar buckets: epoch // window (a 86400s window is a UTC day)
    ROLLING = "rolling"  # starts at the first increment, expires window seconds later


class RateGuard:
    """Per-scope quotas and cooldown keys in Redis."""

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "t4g",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = client
        self._prefix = prefix
        self._clock = clock

    # ── Counters ──

    def counter_key(self, scope: str, key: str, window_seconds: int, mode: WindowMode, now: float) -> str:
        if mode is WindowMode.FIXED:
            bucket = int(now) // window_seconds
            return f"{self._prefix}:rl:{scope}:{key}:{bucket}"
        return f"{self._prefix}:rl:{scope}:{key}"

    async def check_and_consume(
        self,
        scope_keys: Mapping[str, str],
        limits: Mapping[str, int],
        window_seconds: int,
        mode: WindowMode = WindowMode.FIXED,
    ) -> dict[str, int]:
        """Consume one unit from every scope or none of them.

        Raises RateLimited naming the first scope (in ``scope_keys`` order)
        whose counter already reached its limit. Returns the new counts.
        Store timeouts and connection errors raise TransientFailure.
        """
        now = self._clock()
        keys = {
            scope: self.counter_key(scope, key, window_seconds, mode, now)
            for scope, key in scope_keys.items()
        }
        bucket_ttl = max(1, (int(now) // window_seconds + 1) * window_seconds - int(now))

        with _store_errors("check_and_consume"):
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(_MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(*keys.values())
                        counts: dict[str, int] = {}
                        for scope, counter in keys.items():
                            raw = await pipe.get(counter)
                            counts[scope] = int(raw or 0)

                        for scope, count in counts.items():
                            if count >= limits[scope]:
                                raise RateLimited(scope)

                        pipe.multi()
                        for scope, counter in keys.items():
                            pipe.incr(counter)
                            if mode is WindowMode.FIXED:
                                pipe.expire(counter, bucket_ttl)
                            elif counts[scope] == 0:
                                pipe.expire(counter, window_seconds)
                        await pipe.execute()
                        return {scope: count + 1 for scope, count in counts.items()}
                    except WatchError:
                        logger.debug("Rate counter contention on %s, retrying", list(keys))
                        continue

        raise TransientFailure("Rate limiter contention, please retry")

    async def current(self, scope: str, key: str, window_seconds: int, mode: WindowMode = WindowMode.FIXED) -> int:
        with _store_errors("current"):
            raw = await self._redis.get(self.counter_key(scope, key, window_seconds, mode, self._clock()))
        return int(raw or 0)

    async def clear(self, scope: str, key: str, window_seconds: int, mode: WindowMode = WindowMode.FIXED) -> None:
        with _store_errors("clear"):
            await self._redis.delete(self.counter_key(scope, key, window_seconds, mode, self._clock()))

    # ── Cooldowns ──

    def cooldown_key(self, key: str) -> str:
        return f"{self._prefix}:cd:{key}"

    async def check_cooldown(self, key: str) -> None:
        """Raise CooldownActive with the remaining whole seconds if ``key`` is set."""
        with _store_errors("check_cooldown"):
            remaining_ms = await self._redis.pttl(self.cooldown_key(key))
        if remaining_ms == -2:  # no such key
            return
        remaining = math.ceil(remaining_ms / 1000) if remaining_ms > 0 else 0
        raise CooldownActive(remaining)

    async def set_cooldown(self, key: str, duration_seconds: int) -> None:
        with _store_errors("set_cooldown"):
            await self._redis.set(self.cooldown_key(key), str(self._clock()), ex=duration_seconds)

    async def acquire_cooldown(self, key: str, duration_seconds: int) -> None:
        """Atomically check and start a cooldown (SET NX).

        Two concurrent callers cannot both pass; the loser gets CooldownActive.
        """
        for _ in range(3):
            with _store_errors("acquire_cooldown"):
                acquired = await self._redis.set(
                    self.cooldown_key(key), str(self._clock()), ex=duration_seconds, nx=True
                )
            if acquired:
                return
            # Raises unless the key expired between SET NX and PTTL.
            await self.check_cooldown(key)
        raise TransientFailure("Cooldown contention, please retry")

    async def release_cooldown(self, key: str) -> None:
        """Drop a cooldown taken for an action that did not complete."""
        with _store_errors("release_cooldown"):
            await self._redis.delete(self.cooldown_key(key))
