"""Redis connection management.

Exposes a stable proxy so ``from app.redis_client import redis_client`` always
refers to the same object, while the underlying client can be swapped at
runtime (fakeredis in tests).
"""

from __future__ import annotations

import redis.asyncio as redis

from app.config import settings


class RedisProxy:
    """Forward attribute access to the current Redis client."""

    def __init__(self, client: redis.Redis):
        self._client: redis.Redis = client

    def set_client(self, client: redis.Redis) -> None:
        self._client = client

    @property
    def client(self) -> redis.Redis:
        return self._client

    def __getattr__(self, item):
        return getattr(self._client, item)


_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
    redis_client.set_client(client)


async def get_redis() -> RedisProxy:
    """Dependency that provides the shared Redis client."""
    return redis_client


async def close_redis() -> None:
    await redis_client.client.aclose()


class RedisKeys:
    """Key layout for rate-limit and moderation state."""

    @staticmethod
    def rate_limit_message(user_id: str) -> str:
        return f"ratelimit:message:{user_id}"

    @staticmethod
    def rate_limit_message_last(user_id: str) -> str:
        return f"ratelimit:message:{user_id}:last"

    @staticmethod
    def rate_limit_agent_global() -> str:
        return "ratelimit:agent:global"

    @staticmethod
    def rate_limit_agent_personal(user_id: str, session_id: str) -> str:
        return f"ratelimit:agent:{user_id}:{session_id}"

    @staticmethod
    def rate_limit_poke(user_id: str) -> str:
        return f"ratelimit:poke:{user_id}:count"

    @staticmethod
    def spam_duplicate(user_id: str) -> str:
        return f"spam:duplicate:{user_id}"

    @staticmethod
    def spam_mute(user_id: str) -> str:
        return f"spam:mute:{user_id}"
