"""Inbound message protection: rate limit, then spam screening.

Route handlers call these before performing an action and consume the
rate-limit token only once the action has succeeded.
"""

import logging

from app.errors import RateLimitedError, SpamRejectedError
from app.models.user import User
from app.schemas.rate_limits import RateLimitResult, Resource
from app.schemas.spam import MessageMetadata, SpamAction, SpamCheckResult
from app.services.rate_limiter import RateLimiter
from app.services.spam import SpamClassifier
from app.timeutils import utcnow

logger = logging.getLogger(__name__)


async def enforce_rate_limit(
    limiter: RateLimiter,
    user: User,
    resource: Resource,
    session_id: str | None = None,
) -> RateLimitResult:
    """Raise RateLimitedError unless ``user`` may use ``resource`` now."""
    result = await limiter.check_rate_limit(str(user.id), resource, user.tier, session_id)
    if not result.allowed:
        raise RateLimitedError(
            result.reason or "Rate limit exceeded",
            retry_after=result.retry_after,
            details={"resource": resource.value, "reset_at": result.reset_at.isoformat()},
        )
    return result


async def screen_message(classifier: SpamClassifier, user: User, content: str) -> SpamCheckResult:
    """Raise SpamRejectedError for ``block`` and ``mute`` verdicts."""
    result = await classifier.check_spam(
        MessageMetadata(
            content=content,
            user_id=str(user.id),
            timestamp=utcnow(),
            cafe_id=str(user.cafe_id) if user.cafe_id else None,
        )
    )
    if result.action in (SpamAction.BLOCK, SpamAction.MUTE):
        logger.info("message rejected user=%s action=%s", user.id, result.action.value)
        raise SpamRejectedError(
            result.message or "Message rejected",
            code="USER_MUTED" if result.action is SpamAction.MUTE else None,
            details={
                "action": result.action.value,
                "violations": [v.model_dump(mode="json") for v in result.violations],
            },
        )
    return result


async def protect_message(
    limiter: RateLimiter, classifier: SpamClassifier, user: User, content: str
) -> SpamCheckResult:
    await enforce_rate_limit(limiter, user, Resource.MESSAGE)
    return await screen_message(classifier, user, content)
