"""Per-user rate limiting backed by Redis.

Three resources are gated, each with its own algorithm:

- ``message``: token bucket per user plus a cooldown between consecutive sends.
- ``agent``: a cooldown shared by every user plus a small per-session cap.
- ``poke``: fixed-window counter.

Checks never mutate state. Callers consume a token once the action has
actually been performed, so they can check, decide, then consume.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from redis.exceptions import RedisError

from app.config import Settings, settings as default_settings
from app.errors import InfraErrorPolicy, InternalServiceError, ValidationError
from app.redis_client import RedisKeys
from app.schemas.rate_limits import (
    AgentGlobalStatus,
    AgentLimitStatus,
    AgentPersonalStatus,
    MessageLimitStatus,
    PokeLimitStatus,
    RateLimitResult,
    RateLimitStatus,
    Resource,
    UserTier,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"
DISABLED_REMAINING = 999

# Store failures and corrupted counter values are treated alike.
INFRA_ERRORS = (RedisError, ConnectionError, TimeoutError, ValueError)


@dataclass(frozen=True)
class MessageLimits:
    count: int
    window: int
    cooldown: int


def message_limits(settings: Settings, tier: UserTier) -> MessageLimits:
    """Message bucket size, window and cooldown for a tier."""
    if tier is UserTier.BADGE_HOLDER:
        return MessageLimits(
            count=settings.message_badge_holder_count,
            window=settings.message_badge_holder_window,
            cooldown=settings.message_badge_holder_cooldown,
        )
    return MessageLimits(
        count=settings.message_free_count,
        window=settings.message_free_window,
        cooldown=settings.message_free_cooldown,
    )


def _coerce_resource(resource: Resource | str) -> Resource:
    try:
        return Resource(resource)
    except ValueError:
        raise ValidationError(
            f"Unknown resource type: {resource}", code="INVALID_RESOURCE"
        ) from None


def _coerce_tier(tier: UserTier | str) -> UserTier:
    try:
        return UserTier(tier)
    except ValueError:
        raise ValidationError(f"Unknown user tier: {tier}", code="INVALID_TIER") from None


class RateLimiter:
    """Rate limiter for messages, agent queries and pokes."""

    def __init__(
        self,
        redis,
        settings: Settings | None = None,
        *,
        on_infra_error: InfraErrorPolicy | str | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.settings = settings or default_settings
        self.on_infra_error = InfraErrorPolicy(
            on_infra_error or self.settings.rate_limit_on_infra_error
        )
        self._clock = clock

    # --- Public API ---

    async def check_rate_limit(
        self,
        user_id: str,
        resource: Resource | str,
        user_tier: UserTier | str = UserTier.FREE,
        session_id: str | None = None,
    ) -> RateLimitResult:
        """Report whether ``user_id`` may use ``resource`` right now."""
        resource = _coerce_resource(resource)
        tier = _coerce_tier(user_tier)
        now = self._clock()

        if not self.settings.rate_limit_enabled:
            return RateLimitResult(
                allowed=True,
                remaining=DISABLED_REMAINING,
                reset_at=_at(now + 3600),
            )

        try:
            if resource is Resource.MESSAGE:
                return await self._check_message(user_id, tier, now)
            if resource is Resource.AGENT:
                return await self._check_agent(user_id, session_id or DEFAULT_SESSION_ID, now)
            return await self._check_poke(user_id, now)
        except INFRA_ERRORS as exc:
            self._handle_infra_error("check", user_id, resource, exc)
            return RateLimitResult(
                allowed=True,
                remaining=0,
                reset_at=_at(now),
                reason="Rate limiting service error",
            )

    async def consume(
        self,
        user_id: str,
        resource: Resource | str,
        user_tier: UserTier | str = UserTier.FREE,
        session_id: str | None = None,
    ) -> None:
        """Consume one unit of ``resource`` for ``user_id``."""
        resource = _coerce_resource(resource)
        if resource is Resource.MESSAGE:
            await self.consume_message_token(user_id, user_tier)
        elif resource is Resource.AGENT:
            await self.consume_agent_token(user_id, session_id or DEFAULT_SESSION_ID)
        else:
            await self.consume_poke_token(user_id)

    async def consume_message_token(
        self, user_id: str, user_tier: UserTier | str = UserTier.FREE
    ) -> None:
        if not self.settings.rate_limit_enabled:
            return
        limits = message_limits(self.settings, _coerce_tier(user_tier))
        key = RedisKeys.rate_limit_message(user_id)
        last_key = RedisKeys.rate_limit_message_last(user_id)
        now = self._clock()

        try:
            await self._adjust_counter(key, limits.count, -1, limits.window, floor=0)
            await self.redis.set(last_key, repr(now), ex=limits.cooldown + 60)
        except INFRA_ERRORS as exc:
            self._handle_infra_error("consume", user_id, Resource.MESSAGE, exc)

    async def consume_agent_token(self, user_id: str, session_id: str = DEFAULT_SESSION_ID) -> None:
        if not self.settings.rate_limit_enabled:
            return
        global_key = RedisKeys.rate_limit_agent_global()
        personal_key = RedisKeys.rate_limit_agent_personal(user_id, session_id)
        now = self._clock()

        try:
            await self.redis.set(
                global_key, repr(now), ex=self.settings.agent_global_cooldown + 60
            )
            await self._adjust_counter(personal_key, 0, 1, self.settings.agent_session_ttl)
        except INFRA_ERRORS as exc:
            self._handle_infra_error("consume", user_id, Resource.AGENT, exc)

    async def consume_poke_token(self, user_id: str) -> None:
        if not self.settings.rate_limit_enabled:
            return
        key = RedisKeys.rate_limit_poke(user_id)

        try:
            await self._adjust_counter(key, 0, 1, self.settings.poke_window)
        except INFRA_ERRORS as exc:
            self._handle_infra_error("consume", user_id, Resource.POKE, exc)

    async def get_rate_limit_status(
        self,
        user_id: str,
        user_tier: UserTier | str = UserTier.FREE,
        session_id: str = DEFAULT_SESSION_ID,
    ) -> RateLimitStatus:
        """Aggregate status across all resources."""
        tier = _coerce_tier(user_tier)
        limits = message_limits(self.settings, tier)
        now = self._clock()

        try:
            message, agent, poke = await asyncio.gather(
                self._check_message(user_id, tier, now),
                self._check_agent(user_id, session_id, now),
                self._check_poke(user_id, now),
            )
            used = await self.redis.get(RedisKeys.rate_limit_agent_personal(user_id, session_id))
            last_global = await self.redis.get(RedisKeys.rate_limit_agent_global())
        except INFRA_ERRORS as exc:
            logger.error("rate limit status unavailable user=%s: %s", user_id, exc)
            raise InternalServiceError("Rate limit status is temporarily unavailable") from exc

        agent_remaining = max(self.settings.agent_personal_count - int(used or 0), 0)
        if last_global is not None:
            next_available = float(last_global) + self.settings.agent_global_cooldown
        else:
            next_available = now

        return RateLimitStatus(
            message=MessageLimitStatus(
                allowed=message.allowed,
                remaining=message.remaining,
                reset_at=message.reset_at,
                cooldown=limits.cooldown,
            ),
            agent=AgentLimitStatus(
                personal=AgentPersonalStatus(
                    allowed=agent.allowed,
                    remaining=agent_remaining,
                    reset_at=agent.reset_at,
                ),
                global_cooldown=AgentGlobalStatus(
                    allowed=now >= next_available,
                    next_available=_at(next_available),
                ),
            ),
            poke=PokeLimitStatus(
                allowed=poke.allowed,
                remaining=poke.remaining,
                reset_at=poke.reset_at,
            ),
        )

    async def reset_rate_limit(self, user_id: str, resource: Resource | str | None = None) -> int:
        """
        Clear a user's rate limit state (admin operation).

        Clears every per-user key when ``resource`` is None. The shared agent
        cooldown belongs to nobody and is left alone. Returns keys deleted.
        """
        target = _coerce_resource(resource) if resource is not None else None
        keys: list[str] = []
        try:
            if target in (None, Resource.MESSAGE):
                keys += [
                    RedisKeys.rate_limit_message(user_id),
                    RedisKeys.rate_limit_message_last(user_id),
                ]
            if target in (None, Resource.POKE):
                keys.append(RedisKeys.rate_limit_poke(user_id))
            if target in (None, Resource.AGENT):
                pattern = RedisKeys.rate_limit_agent_personal(user_id, "*")
                keys += [key async for key in self.redis.scan_iter(match=pattern)]
            deleted = await self.redis.delete(*keys) if keys else 0
        except INFRA_ERRORS as exc:
            logger.error("rate limit reset failed user=%s: %s", user_id, exc)
            raise InternalServiceError("Rate limit reset failed") from exc

        logger.info(
            "rate limit reset user=%s resource=%s keys=%s",
            user_id,
            target.value if target else "all",
            deleted,
        )
        return deleted

    # --- Algorithms ---

    async def _check_message(self, user_id: str, tier: UserTier, now: float) -> RateLimitResult:
        limits = message_limits(self.settings, tier)

        # Cooldown first: it is cheaper and gives the more actionable reason.
        last = await self.redis.get(RedisKeys.rate_limit_message_last(user_id))
        if last is not None:
            elapsed = now - float(last)
            if elapsed < limits.cooldown:
                retry_after = math.ceil(limits.cooldown - elapsed)
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=_at(now + retry_after),
                    retry_after=retry_after,
                    reason=f"Cooldown active. Wait {retry_after}s",
                )

        key = RedisKeys.rate_limit_message(user_id)
        current = await self.redis.get(key)
        remaining = int(current) if current is not None else limits.count

        if remaining <= 0:
            ttl = await self._ttl(key)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=_at(now + ttl),
                retry_after=ttl,
                reason="Rate limit exceeded",
            )

        return RateLimitResult(
            allowed=True,
            remaining=remaining - 1,
            reset_at=_at(now + limits.window),
        )

    async def _check_agent(self, user_id: str, session_id: str, now: float) -> RateLimitResult:
        cooldown = self.settings.agent_global_cooldown
        last_global = await self.redis.get(RedisKeys.rate_limit_agent_global())
        if last_global is not None:
            elapsed = now - float(last_global)
            if elapsed < cooldown:
                retry_after = math.ceil(cooldown - elapsed)
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=_at(now + retry_after),
                    retry_after=retry_after,
                    reason=f"Global agent cooldown. Wait {retry_after}s",
                )

        personal_key = RedisKeys.rate_limit_agent_personal(user_id, session_id)
        used = await self.redis.get(personal_key)
        remaining = self.settings.agent_personal_count - (int(used) if used is not None else 0)

        if remaining <= 0:
            ttl = await self._ttl(personal_key)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=_at(now + ttl),
                retry_after=ttl,
                reason="Personal agent limit exceeded for this session",
            )

        return RateLimitResult(
            allowed=True,
            remaining=remaining - 1,
            reset_at=_at(now + self.settings.agent_session_ttl),
        )

    async def _check_poke(self, user_id: str, now: float) -> RateLimitResult:
        key = RedisKeys.rate_limit_poke(user_id)
        current = await self.redis.get(key)
        count = int(current) if current is not None else 0

        if count >= self.settings.poke_count:
            ttl = await self._ttl(key)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=_at(now + ttl),
                retry_after=ttl,
                reason=f"Poke limit exceeded. Resets in {math.ceil(ttl / 3600)}h",
            )

        return RateLimitResult(
            allowed=True,
            remaining=self.settings.poke_count - count - 1,
            reset_at=_at(now + self.settings.poke_window),
        )

    async def _adjust_counter(
        self, key: str, initial: int, delta: int, ttl: int, floor: int | None = None
    ) -> int:
        """
        Add ``delta`` to the windowed counter at ``key``.

        The counter is created at ``initial`` with ``ttl`` when absent. If it
        expires between the create and the increment, INCRBY recreates it
        without a TTL, so the expiry is restored before returning.
        """
        await self.redis.set(key, initial, ex=ttl, nx=True)
        value = await self.redis.incrby(key, delta)
        if floor is not None and value < floor:
            # xx: never resurrect a key that expired meanwhile
            await self.redis.set(key, floor, xx=True, keepttl=True)
            value = floor
        if await self.redis.ttl(key) == -1:
            await self.redis.expire(key, ttl)
        return value

    async def _ttl(self, key: str) -> int:
        # -2 (gone) and -1 (no expiry) both mean nothing to wait for.
        return max(await self.redis.ttl(key), 0)

    def _handle_infra_error(
        self, operation: str, user_id: str, resource: Resource, exc: Exception
    ) -> None:
        if self.on_infra_error is InfraErrorPolicy.REJECT:
            logger.error(
                "rate limit %s failed user=%s resource=%s: %s",
                operation,
                user_id,
                resource.value,
                exc,
            )
            raise InternalServiceError("Rate limiting is temporarily unavailable") from exc
        logger.warning(
            "rate limit %s failed open user=%s resource=%s: %s",
            operation,
            user_id,
            resource.value,
            exc,
        )


def _at(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)
