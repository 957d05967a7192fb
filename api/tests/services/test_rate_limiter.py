"""
Tests for the Redis-backed rate limiter:
- message token bucket and cooldown per tier
- agent global cooldown and per-session cap
- poke fixed window
- failure policy, disabled mode, status and admin reset
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.config import Settings
from app.errors import InternalServiceError, ValidationError
from app.schemas.rate_limits import Resource
from app.services.rate_limiter import RateLimiter

USER = "user-1"


class Clock:
    """Controllable stand-in for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenRedis:
    """Every command fails as if Redis were unreachable."""

    def __getattr__(self, name):
        async def _fail(*args, **kwargs):
            raise RedisConnectionError("redis down")

        return _fail


class ExpiresAfterCreate:
    """Redis whose counters expire right after ``SET ... NX`` returns."""

    def __init__(self, redis):
        self._redis = redis

    def __getattr__(self, name):
        return getattr(self._redis, name)

    async def set(self, key, value, **kwargs):
        result = await self._redis.set(key, value, **kwargs)
        if kwargs.get("nx"):
            await self._redis.delete(key)
        return result


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def limiter(fake_redis, clock) -> RateLimiter:
    return RateLimiter(fake_redis, Settings(), clock=clock)


class TestMessageLimits:
    async def test_fresh_free_user_is_allowed(self, limiter: RateLimiter):
        result = await limiter.check_rate_limit(USER, "message", "free")
        assert result.allowed is True
        assert result.remaining == 29

    async def test_badge_holder_gets_larger_bucket(self, limiter: RateLimiter):
        result = await limiter.check_rate_limit(USER, Resource.MESSAGE, "badge_holder")
        assert result.remaining == 59

    async def test_check_does_not_consume(self, limiter: RateLimiter, fake_redis):
        await limiter.check_rate_limit(USER, "message")
        await limiter.check_rate_limit(USER, "message")
        assert await fake_redis.keys("*") == []

    async def test_cooldown_after_consume(self, limiter: RateLimiter):
        await limiter.consume_message_token(USER, "free")
        result = await limiter.check_rate_limit(USER, "message", "free")

        assert result.allowed is False
        assert result.retry_after == 30
        assert result.reason == "Cooldown active. Wait 30s"

    async def test_badge_holder_cooldown_is_shorter(self, limiter: RateLimiter, clock: Clock):
        await limiter.consume_message_token(USER, "badge_holder")
        clock.advance(10)
        result = await limiter.check_rate_limit(USER, "message", "badge_holder")
        assert result.retry_after == 5

    async def test_allowed_after_cooldown_elapses(self, limiter: RateLimiter, clock: Clock):
        await limiter.consume_message_token(USER)
        clock.advance(31)
        result = await limiter.check_rate_limit(USER, "message")

        assert result.allowed is True
        assert result.remaining == 28

    async def test_first_consume_initializes_bucket_with_window_ttl(
        self, limiter: RateLimiter, fake_redis
    ):
        await limiter.consume_message_token(USER)
        assert await fake_redis.get("ratelimit:message:user-1") == "29"
        assert 0 < await fake_redis.ttl("ratelimit:message:user-1") <= 3600
        assert 0 < await fake_redis.ttl("ratelimit:message:user-1:last") <= 90

    async def test_bucket_exhaustion_denies_until_ttl(
        self, limiter: RateLimiter, clock: Clock
    ):
        for _ in range(30):
            await limiter.consume_message_token(USER)
            clock.advance(31)

        result = await limiter.check_rate_limit(USER, "message")
        assert result.allowed is False
        assert result.reason == "Rate limit exceeded"
        assert 0 < result.retry_after <= 3600

    async def test_counter_never_goes_negative(self, limiter: RateLimiter, fake_redis):
        await fake_redis.set("ratelimit:message:user-1", 0, ex=600)
        await limiter.consume_message_token(USER)

        assert await fake_redis.get("ratelimit:message:user-1") == "0"
        assert await fake_redis.ttl("ratelimit:message:user-1") > 0

    async def test_cooldown_reported_before_empty_bucket(
        self, limiter: RateLimiter, fake_redis, clock: Clock
    ):
        await fake_redis.set("ratelimit:message:user-1", 0, ex=600)
        await fake_redis.set("ratelimit:message:user-1:last", repr(clock.now - 5), ex=90)

        result = await limiter.check_rate_limit(USER, "message")
        assert result.reason == "Cooldown active. Wait 25s"


class TestAgentLimits:
    async def test_global_cooldown_applies_to_everyone(self, limiter: RateLimiter):
        await limiter.consume_agent_token("someone-else", "s1")
        result = await limiter.check_rate_limit(USER, "agent", session_id="s1")

        assert result.allowed is False
        assert result.reason == "Global agent cooldown. Wait 120s"

    async def test_personal_cap_per_session(self, limiter: RateLimiter, clock: Clock):
        await limiter.consume_agent_token(USER, "s1")
        clock.advance(121)
        result = await limiter.check_rate_limit(USER, "agent", session_id="s1")
        assert result.allowed is True
        assert result.remaining == 0

        await limiter.consume_agent_token(USER, "s1")
        clock.advance(121)
        result = await limiter.check_rate_limit(USER, "agent", session_id="s1")
        assert result.allowed is False
        assert result.reason == "Personal agent limit exceeded for this session"

        other_session = await limiter.check_rate_limit(USER, "agent", session_id="s2")
        assert other_session.allowed is True

    async def test_missing_session_uses_default(self, limiter: RateLimiter, fake_redis):
        await limiter.consume(USER, "agent")
        assert await fake_redis.get("ratelimit:agent:user-1:default") == "1"
        assert await fake_redis.ttl("ratelimit:agent:user-1:default") > 3600


class TestPokeLimits:
    async def test_window_cap(self, limiter: RateLimiter):
        for _ in range(5):
            result = await limiter.check_rate_limit(USER, "poke")
            assert result.allowed is True
            await limiter.consume_poke_token(USER)

        result = await limiter.check_rate_limit(USER, "poke")
        assert result.allowed is False
        assert result.reason == "Poke limit exceeded. Resets in 24h"

    async def test_remaining_counts_down(self, limiter: RateLimiter):
        await limiter.consume(USER, Resource.POKE)
        result = await limiter.check_rate_limit(USER, "poke")
        assert result.remaining == 3


class TestCounterExpiry:
    """A counter that expires mid-consume must come back with a TTL."""

    @pytest.fixture
    def expiring_limiter(self, fake_redis, clock) -> RateLimiter:
        return RateLimiter(ExpiresAfterCreate(fake_redis), Settings(), clock=clock)

    async def test_message_bucket_keeps_window_ttl(
        self, expiring_limiter: RateLimiter, fake_redis, clock: Clock
    ):
        await expiring_limiter.consume_message_token(USER)

        assert await fake_redis.get("ratelimit:message:user-1") == "0"
        assert 0 < await fake_redis.ttl("ratelimit:message:user-1") <= 3600

        clock.advance(31)
        result = await expiring_limiter.check_rate_limit(USER, "message")
        assert result.allowed is False
        assert 0 < result.retry_after <= 3600

    async def test_poke_counter_keeps_window_ttl(
        self, expiring_limiter: RateLimiter, fake_redis
    ):
        await expiring_limiter.consume_poke_token(USER)

        assert await fake_redis.get("ratelimit:poke:user-1:count") == "1"
        assert 0 < await fake_redis.ttl("ratelimit:poke:user-1:count") <= 86400

    async def test_agent_counter_keeps_session_ttl(
        self, expiring_limiter: RateLimiter, fake_redis
    ):
        await expiring_limiter.consume_agent_token(USER, "s1")

        assert await fake_redis.get("ratelimit:agent:user-1:s1") == "1"
        assert await fake_redis.ttl("ratelimit:agent:user-1:s1") > 0

    async def test_exhausted_bucket_still_expires(self, limiter: RateLimiter, fake_redis):
        await fake_redis.set("ratelimit:message:user-1", 0, ex=600)
        for _ in range(3):
            await limiter.consume_message_token(USER)

        assert await fake_redis.get("ratelimit:message:user-1") == "0"
        assert 0 < await fake_redis.ttl("ratelimit:message:user-1") <= 600


class TestValidationAndPolicy:
    async def test_unknown_resource_never_reaches_store(self, limiter: RateLimiter, fake_redis):
        with pytest.raises(ValidationError):
            await limiter.check_rate_limit(USER, "banana")
        assert await fake_redis.keys("*") == []

    async def test_unknown_tier_is_rejected(self, limiter: RateLimiter):
        with pytest.raises(ValidationError):
            await limiter.check_rate_limit(USER, "message", "platinum")

    async def test_disabled_limiter_allows_everything(self, fake_redis, clock: Clock):
        limiter = RateLimiter(fake_redis, Settings(rate_limit_enabled=False), clock=clock)

        result = await limiter.check_rate_limit(USER, "message")
        await limiter.consume(USER, "message")

        assert result.allowed is True
        assert result.remaining == 999
        assert await fake_redis.keys("*") == []

    async def test_store_failure_fails_open_by_default(self, caplog):
        limiter = RateLimiter(BrokenRedis(), Settings())
        result = await limiter.check_rate_limit(USER, "message")

        assert result.allowed is True
        assert result.reason == "Rate limiting service error"
        assert "failed open" in caplog.text

    async def test_corrupted_counter_fails_open(self, limiter: RateLimiter, fake_redis):
        await fake_redis.set("ratelimit:poke:user-1:count", "not-a-number")
        result = await limiter.check_rate_limit(USER, "poke")
        assert result.allowed is True

    async def test_store_failure_rejects_when_configured(self):
        limiter = RateLimiter(BrokenRedis(), Settings(), on_infra_error="reject")
        with pytest.raises(InternalServiceError):
            await limiter.check_rate_limit(USER, "message")

    async def test_consume_failure_is_swallowed_when_failing_open(self):
        limiter = RateLimiter(BrokenRedis(), Settings())
        await limiter.consume_message_token(USER)


class TestStatusAndReset:
    async def test_status_aggregates_resources(self, limiter: RateLimiter, clock: Clock):
        await limiter.consume_message_token(USER)
        status = await limiter.get_rate_limit_status(USER, "free", "default")

        assert status.message.allowed is False
        assert status.message.cooldown == 30
        assert status.agent.personal.remaining == 2
        assert status.agent.global_cooldown.allowed is True
        assert status.poke.remaining == 4

    async def test_status_reports_global_next_available(
        self, limiter: RateLimiter, clock: Clock
    ):
        await limiter.consume_agent_token("someone-else", "x")
        status = await limiter.get_rate_limit_status(USER)

        assert status.agent.global_cooldown.allowed is False
        assert status.agent.global_cooldown.next_available.timestamp() == pytest.approx(
            clock.now + 120
        )

    async def test_reset_all_keeps_global_cooldown(self, limiter: RateLimiter, fake_redis):
        await limiter.consume_message_token(USER)
        await limiter.consume_agent_token(USER, "s1")
        await limiter.consume_agent_token(USER, "s2")
        await limiter.consume_poke_token(USER)

        deleted = await limiter.reset_rate_limit(USER)

        assert deleted == 5
        assert await fake_redis.keys("ratelimit:*user-1*") == []
        assert await fake_redis.exists("ratelimit:agent:global") == 1

    async def test_reset_single_resource(self, limiter: RateLimiter, fake_redis):
        await limiter.consume_message_token(USER)
        await limiter.consume_poke_token(USER)

        await limiter.reset_rate_limit(USER, "poke")

        assert await fake_redis.exists("ratelimit:poke:user-1:count") == 0
        assert await fake_redis.exists("ratelimit:message:user-1") == 1

    async def test_reset_failure_raises(self):
        limiter = RateLimiter(BrokenRedis(), Settings())
        with pytest.raises(InternalServiceError):
            await limiter.reset_rate_limit(USER, "message")
