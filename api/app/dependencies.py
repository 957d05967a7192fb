"""Per-request service builders for FastAPI routes.

Services are cheap wrappers over the shared Redis client and the request's
database session, so each request gets its own instances. The profanity
filter is the one piece of mutable state and lives on ``app.state``.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.redis_client import RedisProxy, get_redis
from app.services.matching import MatchingService
from app.services.mutes import MuteRegistry
from app.services.pokes import PokeService
from app.services.rate_limiter import RateLimiter
from app.services.spam import ProfanityFilter, SpamClassifier


def get_rate_limiter(redis: RedisProxy = Depends(get_redis)) -> RateLimiter:
    return RateLimiter(redis)


def get_mute_registry(redis: RedisProxy = Depends(get_redis)) -> MuteRegistry:
    return MuteRegistry(redis)


def get_profanity_filter(request: Request) -> ProfanityFilter:
    return request.app.state.profanity_filter


def get_spam_classifier(
    redis: RedisProxy = Depends(get_redis),
    mutes: MuteRegistry = Depends(get_mute_registry),
    profanity: ProfanityFilter = Depends(get_profanity_filter),
) -> SpamClassifier:
    return SpamClassifier(redis, mutes, profanity)


def get_poke_service(db: AsyncSession = Depends(get_db)) -> PokeService:
    return PokeService(db)


def get_matching_service(db: AsyncSession = Depends(get_db)) -> MatchingService:
    return MatchingService(db)
