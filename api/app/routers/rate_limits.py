"""Rate limit status, checks and consumption for the authenticated user."""

from fastapi import APIRouter, Depends, Header, Request, status

from app.auth.dependencies import get_current_user
from app.config import settings
from app.dependencies import get_rate_limiter
from app.middleware.protection import enforce_rate_limit
from app.middleware.rate_limit import limiter as ip_limiter
from app.models.user import APIKey, User
from app.schemas.common import ApiResponse
from app.schemas.rate_limits import (
    ConsumeResponse,
    RateLimitCheckRequest,
    RateLimitResult,
    RateLimitStatus,
)
from app.services.rate_limiter import DEFAULT_SESSION_ID, RateLimiter

router = APIRouter(prefix="/api/v1/rate-limits", tags=["Rate Limits"])


@router.get(
    "/status",
    response_model=ApiResponse[RateLimitStatus],
    status_code=status.HTTP_200_OK,
)
async def get_status(
    auth: tuple[User, APIKey] = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    x_session_id: str | None = Header(default=None, alias="X-Session-ID"),
) -> ApiResponse[RateLimitStatus]:
    """Remaining quota for every resource."""
    user, _ = auth
    result = await limiter.get_rate_limit_status(
        str(user.id), user.tier, x_session_id or DEFAULT_SESSION_ID
    )
    return ApiResponse(data=result)


@router.post(
    "/check",
    response_model=ApiResponse[RateLimitResult],
    status_code=status.HTTP_200_OK,
)
@ip_limiter.limit(settings.rate_limit_check_ip_rate_limit)
async def check_rate_limit(
    request: Request,
    data: RateLimitCheckRequest,
    auth: tuple[User, APIKey] = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    x_session_id: str | None = Header(default=None, alias="X-Session-ID"),
) -> ApiResponse[RateLimitResult]:
    """
    Report whether a resource may be used right now without consuming it.

    Denials are reported in the body with 200, not raised.
    """
    user, _ = auth
    result = await limiter.check_rate_limit(
        str(user.id), data.resource, user.tier, data.session_id or x_session_id
    )
    return ApiResponse(data=result)


@router.post(
    "/consume",
    response_model=ApiResponse[ConsumeResponse],
    status_code=status.HTTP_200_OK,
)
async def consume(
    data: RateLimitCheckRequest,
    auth: tuple[User, APIKey] = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    x_session_id: str | None = Header(default=None, alias="X-Session-ID"),
) -> ApiResponse[ConsumeResponse]:
    """Consume one unit, or fail with 429 when none is available."""
    user, _ = auth
    session_id = data.session_id or x_session_id

    result = await enforce_rate_limit(limiter, user, data.resource, session_id)
    await limiter.consume(str(user.id), data.resource, user.tier, session_id)

    return ApiResponse(
        data=ConsumeResponse(consumed=True, remaining=result.remaining, reset_at=result.reset_at)
    )
