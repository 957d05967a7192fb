"""Temporary mutes stored as TTL-bound Redis records.

Expiry is left to Redis: once the key's TTL runs out the user is no longer
muted, so no cleanup job exists for mutes.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError as PydanticValidationError

from app.config import Settings, settings as default_settings
from app.redis_client import RedisKeys
from app.schemas.spam import MuteRecord, SpamViolation

logger = logging.getLogger(__name__)


class MuteRegistry:
    """Source of truth for whether a user is currently muted."""

    def __init__(self, redis, settings: Settings | None = None):
        self.redis = redis
        self.settings = settings or default_settings

    async def mute_user(
        self,
        user_id: str,
        violations: Sequence[SpamViolation] = (),
        *,
        reason: str = "Spam violations",
        duration: int | None = None,
    ) -> MuteRecord:
        """
        Mute a user for ``duration`` seconds (default: configured mute duration).

        Muting an already muted user replaces the record and restarts the TTL.
        """
        duration = duration or self.settings.spam_mute_duration
        record = MuteRecord(
            user_id=user_id,
            muted_until=datetime.now(timezone.utc) + timedelta(seconds=duration),
            reason=reason,
            violations=list(violations),
        )
        await self.redis.set(
            RedisKeys.spam_mute(user_id),
            record.model_dump_json(),
            ex=duration,
        )
        logger.warning(
            "user muted user=%s violations=%s duration=%ss reason=%s",
            user_id,
            len(record.violations),
            duration,
            reason,
        )
        return record

    async def is_user_muted(self, user_id: str) -> bool:
        return await self.redis.get(RedisKeys.spam_mute(user_id)) is not None

    async def get_mute_info(self, user_id: str) -> MuteRecord | None:
        raw = await self.redis.get(RedisKeys.spam_mute(user_id))
        if raw is None:
            return None
        try:
            return MuteRecord.model_validate_json(raw)
        except PydanticValidationError:
            logger.error("failed to parse mute record user=%s", user_id, exc_info=True)
            return None

    async def unmute_user(self, user_id: str) -> bool:
        """Remove a mute early. Returns whether a mute was present."""
        removed = await self.redis.delete(RedisKeys.spam_mute(user_id))
        logger.info("user unmuted user=%s removed=%s", user_id, bool(removed))
        return bool(removed)
