"""Admin router for moderation and maintenance."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.dependencies import require_admin
from app.database import get_db
from app.dependencies import (
    get_mute_registry,
    get_poke_service,
    get_profanity_filter,
    get_rate_limiter,
)
from app.errors import NotFoundError
from app.models.user import APIKey, User
from app.schemas.admin import AdminUserInfo, ExpirePokesResponse, ListUsersResponse
from app.schemas.common import ApiResponse
from app.schemas.rate_limits import ResetRateLimitRequest, ResetRateLimitResponse
from app.schemas.spam import (
    MuteInfoResponse,
    MuteUserRequest,
    ProfanityListResponse,
    ProfanityWordRequest,
    UnmuteResponse,
)
from app.services.mutes import MuteRegistry
from app.services.pokes import PokeService
from app.services.rate_limiter import RateLimiter
from app.services.spam import ProfanityFilter
from app.timeutils import isoformat

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get(
    "/users",
    response_model=ApiResponse[ListUsersResponse],
    status_code=status.HTTP_200_OK,
)
async def list_users(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
) -> ApiResponse[ListUsersResponse]:
    """
    List all users in the system.

    Requires admin role.
    """
    result = await db.execute(
        select(User)
        .options(selectinload(User.roles))
        .order_by(User.created_at.desc())
    )
    users = result.scalars().all()

    items = [
        AdminUserInfo(
            user_id=str(user.id),
            username=user.username,
            display_name=user.display_name,
            tier=user.tier,
            poke_enabled=user.poke_enabled,
            roles=[role.role for role in user.roles],
            created_at=isoformat(user.created_at),
            last_seen_at=isoformat(user.last_seen_at),
        )
        for user in users
    ]

    return ApiResponse(data=ListUsersResponse(items=items))


# --- Rate limits ---


@router.post(
    "/rate-limits/reset",
    response_model=ApiResponse[ResetRateLimitResponse],
    status_code=status.HTTP_200_OK,
)
async def reset_rate_limit(
    data: ResetRateLimitRequest,
    auth: tuple[User, APIKey] = Depends(require_admin),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ApiResponse[ResetRateLimitResponse]:
    """Clear a user's counters for one resource, or all of them."""
    await limiter.reset_rate_limit(data.user_id, data.resource)
    return ApiResponse(
        data=ResetRateLimitResponse(
            reset=True,
            user_id=data.user_id,
            resource=data.resource.value if data.resource else "all",
        )
    )


# --- Mutes ---


async def _get_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User '{user_id}' not found", code="USER_NOT_FOUND")
    return user


@router.get(
    "/mutes/{user_id}",
    response_model=ApiResponse[MuteInfoResponse],
    status_code=status.HTTP_200_OK,
)
async def get_mute(
    user_id: UUID,
    auth: tuple[User, APIKey] = Depends(require_admin),
    mutes: MuteRegistry = Depends(get_mute_registry),
) -> ApiResponse[MuteInfoResponse]:
    muted = await mutes.is_user_muted(str(user_id))
    record = await mutes.get_mute_info(str(user_id)) if muted else None
    return ApiResponse(data=MuteInfoResponse(muted=muted, mute=record))


@router.post(
    "/mutes/{user_id}",
    response_model=ApiResponse[MuteInfoResponse],
    status_code=status.HTTP_200_OK,
)
async def mute_user(
    user_id: UUID,
    data: MuteUserRequest,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(require_admin),
    mutes: MuteRegistry = Depends(get_mute_registry),
) -> ApiResponse[MuteInfoResponse]:
    """Mute a user manually. An existing mute is replaced, not extended."""
    await _get_user(db, user_id)
    record = await mutes.mute_user(
        str(user_id), reason=data.reason, duration=data.duration_seconds
    )
    return ApiResponse(data=MuteInfoResponse(muted=True, mute=record))


@router.delete(
    "/mutes/{user_id}",
    response_model=ApiResponse[UnmuteResponse],
    status_code=status.HTTP_200_OK,
)
async def unmute_user(
    user_id: UUID,
    auth: tuple[User, APIKey] = Depends(require_admin),
    mutes: MuteRegistry = Depends(get_mute_registry),
) -> ApiResponse[UnmuteResponse]:
    removed = await mutes.unmute_user(str(user_id))
    return ApiResponse(data=UnmuteResponse(unmuted=removed, user_id=str(user_id)))


# --- Profanity list ---


@router.get(
    "/profanity",
    response_model=ApiResponse[ProfanityListResponse],
    status_code=status.HTTP_200_OK,
)
async def list_profanity(
    auth: tuple[User, APIKey] = Depends(require_admin),
    profanity: ProfanityFilter = Depends(get_profanity_filter),
) -> ApiResponse[ProfanityListResponse]:
    return ApiResponse(data=ProfanityListResponse(words=profanity.words))


@router.post(
    "/profanity",
    response_model=ApiResponse[ProfanityListResponse],
    status_code=status.HTTP_200_OK,
)
async def add_profanity(
    data: ProfanityWordRequest,
    auth: tuple[User, APIKey] = Depends(require_admin),
    profanity: ProfanityFilter = Depends(get_profanity_filter),
) -> ApiResponse[ProfanityListResponse]:
    """Add a word to the filter. Adding a known word is a no-op."""
    profanity.add_word(data.word)
    return ApiResponse(data=ProfanityListResponse(words=profanity.words))


@router.delete(
    "/profanity/{word}",
    response_model=ApiResponse[ProfanityListResponse],
    status_code=status.HTTP_200_OK,
)
async def remove_profanity(
    word: str,
    auth: tuple[User, APIKey] = Depends(require_admin),
    profanity: ProfanityFilter = Depends(get_profanity_filter),
) -> ApiResponse[ProfanityListResponse]:
    if not profanity.remove_word(word):
        raise NotFoundError(f"Word '{word}' is not in the filter", code="WORD_NOT_FOUND")
    return ApiResponse(data=ProfanityListResponse(words=profanity.words))


# --- Pokes ---


@router.post(
    "/pokes/expire",
    response_model=ApiResponse[ExpirePokesResponse],
    status_code=status.HTTP_200_OK,
)
async def expire_pokes(
    auth: tuple[User, APIKey] = Depends(require_admin),
    service: PokeService = Depends(get_poke_service),
) -> ApiResponse[ExpirePokesResponse]:
    """Run the poke expiry sweep now."""
    expired = await service.expire_old_pokes()
    return ApiResponse(data=ExpirePokesResponse(expired_count=expired))
