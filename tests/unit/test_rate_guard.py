"""Tests for the Redis rate guard: fixed and rolling windows, cooldowns."""

from __future__ import annotations

import asyncio

import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio
import redis.exceptions

from t4g.errors import CooldownActive, RateLimited, TransientFailure
from t4g.ratelimit import RateGuard, WindowMode
from t4g.ratelimit.login_attempts import clear_login_attempts, record_login_attempt

DAY = 86_400


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
class TestFixedWindow:
    async def test_consumes_until_limit(self, redis_client):
        guard = RateGuard(redis_client)
        for expected in (1, 2, 3):
            counts = await guard.check_and_consume({"user": "1"}, {"user": 3}, DAY)
            assert counts == {"user": expected}
        with pytest.raises(RateLimited) as exc_info:
            await guard.check_and_consume({"user": "1"}, {"user": 3}, DAY)
        assert exc_info.value.scope == "user"

    async def test_rejected_call_is_not_counted(self, redis_client):
        guard = RateGuard(redis_client)
        await guard.check_and_consume({"user": "1"}, {"user": 1}, DAY)
        for _ in range(3):
            with pytest.raises(RateLimited):
                await guard.check_and_consume({"user": "1"}, {"user": 1}, DAY)
        assert await guard.current("user", "1", DAY) == 1

    async def test_all_or_nothing_across_scopes(self, redis_client):
        """A full tag quota blocks the scan without charging the user quota."""
        guard = RateGuard(redis_client)
        limits = {"user": 50, "tag": 1}
        await guard.check_and_consume({"user": "1", "tag": "T"}, limits, DAY)
        with pytest.raises(RateLimited) as exc_info:
            await guard.check_and_consume({"user": "1", "tag": "T"}, limits, DAY)
        assert exc_info.value.scope == "tag"
        assert await guard.current("user", "1", DAY) == 1

    async def test_window_resets_next_calendar_day(self, redis_client):
        clock = FakeClock(20_000 * DAY + DAY - 60)  # 23:59 UTC
        guard = RateGuard(redis_client, clock=clock)
        await guard.check_and_consume({"ip": "10.0.0.1"}, {"ip": 1}, DAY)
        with pytest.raises(RateLimited):
            await guard.check_and_consume({"ip": "10.0.0.1"}, {"ip": 1}, DAY)

        clock.now += 120  # 00:01 UTC the next day
        assert await guard.check_and_consume({"ip": "10.0.0.1"}, {"ip": 1}, DAY) == {"ip": 1}

    async def test_counter_expires_at_bucket_end(self, redis_client):
        clock = FakeClock(20_000 * DAY + DAY - 600)
        guard = RateGuard(redis_client, clock=clock)
        await guard.check_and_consume({"user": "9"}, {"user": 5}, DAY)
        key = guard.counter_key("user", "9", DAY, WindowMode.FIXED, clock.now)
        assert 0 < await redis_client.ttl(key) <= 600

    async def test_concurrent_callers_never_exceed_limit(self, redis_client):
        guard = RateGuard(redis_client)

        async def attempt() -> bool:
            try:
                await guard.check_and_consume({"tag": "HOT"}, {"tag": 5}, DAY)
            except RateLimited:
                return False
            return True

        results = await asyncio.gather(*(attempt() for _ in range(12)))
        assert results.count(True) == 5
        assert await guard.current("tag", "HOT", DAY) == 5


@pytest.mark.asyncio
class TestRollingWindow:
    async def test_login_attempts_limited(self, redis_client):
        guard = RateGuard(redis_client)
        for expected in range(1, 6):
            assert await record_login_attempt(guard, "Alice@Example.com") == expected
        with pytest.raises(RateLimited) as exc_info:
            await record_login_attempt(guard, "alice@example.com")
        assert exc_info.value.scope == "login"

    async def test_window_starts_at_first_attempt(self, redis_client):
        guard = RateGuard(redis_client)
        await record_login_attempt(guard, "bob")
        key = guard.counter_key("login", "bob", 900, WindowMode.ROLLING, 0)
        ttl = await redis_client.ttl(key)
        assert 890 <= ttl <= 900

        # Later attempts do not push the expiry out
        await redis_client.expire(key, 100)
        await record_login_attempt(guard, "bob")
        assert await redis_client.ttl(key) <= 100

    async def test_clear_resets(self, redis_client):
        guard = RateGuard(redis_client)
        for _ in range(5):
            await record_login_attempt(guard, "carol")
        await clear_login_attempts(guard, "carol")
        assert await record_login_attempt(guard, "carol") == 1


@pytest.mark.asyncio
class TestCooldown:
    async def test_no_cooldown_passes(self, redis_client):
        await RateGuard(redis_client).check_cooldown("nfc:1:1")

    async def test_remaining_time_reported(self, redis_client):
        guard = RateGuard(redis_client)
        await guard.set_cooldown("nfc:1:1", 300)
        with pytest.raises(CooldownActive) as exc_info:
            await guard.check_cooldown("nfc:1:1")
        assert 299 <= exc_info.value.remaining_seconds <= 300
        assert exc_info.value.to_dict()["retry_after"] == exc_info.value.remaining_seconds

    async def test_acquire_is_exclusive(self, redis_client):
        guard = RateGuard(redis_client)
        await guard.acquire_cooldown("nfc:2:5", 300)
        with pytest.raises(CooldownActive):
            await guard.acquire_cooldown("nfc:2:5", 300)

    async def test_release(self, redis_client):
        guard = RateGuard(redis_client)
        await guard.acquire_cooldown("nfc:3:5", 300)
        await guard.release_cooldown("nfc:3:5")
        await guard.acquire_cooldown("nfc:3:5", 300)

    async def test_keys_are_independent(self, redis_client):
        guard = RateGuard(redis_client)
        await guard.acquire_cooldown("nfc:1:1", 300)
        await guard.acquire_cooldown("nfc:1:2", 300)
        await guard.acquire_cooldown("nfc:2:1", 300)


@pytest.mark.asyncio
class TestStoreFailures:
    """A disconnected store must fail as a retryable error, not a raw Redis one."""

    @pytest_asyncio.fixture
    async def offline_guard(self):
        server = fakeredis.FakeServer()
        client = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
        server.connected = False
        yield RateGuard(client)
        await client.aclose()

    async def test_check_and_consume(self, offline_guard):
        with pytest.raises(TransientFailure) as exc_info:
            await offline_guard.check_and_consume({"user": "1"}, {"user": 3}, DAY)
        assert isinstance(exc_info.value.__cause__, redis.exceptions.RedisError)

    async def test_cooldown_calls(self, offline_guard):
        with pytest.raises(TransientFailure):
            await offline_guard.acquire_cooldown("nfc:1:1", 300)
        with pytest.raises(TransientFailure):
            await offline_guard.check_cooldown("nfc:1:1")
        with pytest.raises(TransientFailure):
            await offline_guard.release_cooldown("nfc:1:1")

    async def test_login_attempts(self, offline_guard):
        with pytest.raises(TransientFailure):
            await record_login_attempt(offline_guard, "alice")
