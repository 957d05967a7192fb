"""Pokes router: interest-based introductions between café patrons."""

from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.config import settings
from app.database import get_db
from app.dependencies import get_poke_service, get_rate_limiter
from app.errors import RateLimitedError
from app.middleware.protection import enforce_rate_limit
from app.models.notification import Notification
from app.models.poke import Poke
from app.models.user import APIKey, User
from app.schemas.common import ApiResponse
from app.schemas.pokes import (
    PokeListResponse,
    PokeResponse,
    PokeUser,
    RespondToPokeRequest,
    RespondToPokeResponse,
    SendPokeRequest,
)
from app.schemas.rate_limits import Resource
from app.services.pokes import PokeService
from app.services.rate_limiter import RateLimiter
from app.timeutils import isoformat

router = APIRouter(prefix="/api/v1/pokes", tags=["Pokes"])


def _poke_response(poke: Poke, from_user: User, to_user: User) -> PokeResponse:
    return PokeResponse(
        id=str(poke.id),
        from_user=PokeUser.from_user(from_user),
        to_user=PokeUser.from_user(to_user),
        shared_interest=poke.shared_interest,
        status=poke.status,
        created_at=isoformat(poke.created_at),
        expires_at=isoformat(poke.expires_at),
        responded_at=isoformat(poke.responded_at),
    )


@router.post(
    "",
    response_model=ApiResponse[PokeResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_poke(
    data: SendPokeRequest,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    service: PokeService = Depends(get_poke_service),
) -> ApiResponse[PokeResponse]:
    """
    Poke another user over a shared interest.

    Gated by the poke rate limit and by the number of pokes stored in the
    trailing window, so a lost Redis counter cannot lift the cap.
    """
    user, _ = auth

    await enforce_rate_limit(limiter, user, Resource.POKE)
    window = timedelta(seconds=settings.poke_window)
    if not await service.check_rate_limit(user.id, window, settings.poke_count):
        raise RateLimitedError(
            f"You can only send {settings.poke_count} pokes per "
            f"{settings.poke_window // 3600}h",
            code="POKE_LIMIT_EXCEEDED",
        )

    poke = await service.send_poke(user.id, data.to_user_id, data.shared_interest)
    await limiter.consume_poke_token(str(user.id))

    db.add(
        Notification(
            user_id=poke.to_user_id,
            notification_type="poke_received",
            title=f"{user.display_name or user.username} poked you",
            body=f"You both like {poke.shared_interest}",
            resource_type="poke",
            resource_id=poke.id,
            payload={"from_user_id": str(user.id), "shared_interest": poke.shared_interest},
        )
    )
    await db.commit()

    recipient = await db.get(User, poke.to_user_id)
    return ApiResponse(data=_poke_response(poke, user, recipient))


@router.post(
    "/{poke_id}/respond",
    response_model=ApiResponse[RespondToPokeResponse],
    status_code=status.HTTP_200_OK,
)
async def respond_to_poke(
    poke_id: UUID,
    data: RespondToPokeRequest,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
    service: PokeService = Depends(get_poke_service),
) -> ApiResponse[RespondToPokeResponse]:
    """Accept or decline a poke you received."""
    user, _ = auth

    result = await service.respond_to_poke(poke_id, user.id, data.action)
    sender = await db.get(User, result.poke.from_user_id)

    if result.matched:
        for recipient, other in ((sender, user), (user, sender)):
            db.add(
                Notification(
                    user_id=recipient.id,
                    notification_type="poke_matched",
                    title=f"You matched with {other.display_name or other.username}",
                    resource_type="dm_channel",
                    resource_id=result.channel_id,
                    payload={"user_id": str(other.id), "poke_id": str(result.poke.id)},
                )
            )
        await db.commit()

    return ApiResponse(
        data=RespondToPokeResponse(
            poke=_poke_response(result.poke, sender, user),
            matched=result.matched,
            channel_id=str(result.channel_id) if result.channel_id else None,
        )
    )


@router.get(
    "/pending",
    response_model=ApiResponse[PokeListResponse],
    status_code=status.HTTP_200_OK,
)
async def list_pending_pokes(
    auth: tuple[User, APIKey] = Depends(get_current_user),
    service: PokeService = Depends(get_poke_service),
) -> ApiResponse[PokeListResponse]:
    """Pokes waiting for your answer, newest first."""
    user, _ = auth
    pokes = await service.get_pending_pokes(user.id)
    return ApiResponse(
        data=PokeListResponse(items=[_poke_response(p, p.from_user, p.to_user) for p in pokes])
    )


@router.get(
    "/sent",
    response_model=ApiResponse[PokeListResponse],
    status_code=status.HTTP_200_OK,
)
async def list_sent_pokes(
    auth: tuple[User, APIKey] = Depends(get_current_user),
    service: PokeService = Depends(get_poke_service),
) -> ApiResponse[PokeListResponse]:
    user, _ = auth
    pokes = await service.get_sent_pokes(user.id)
    return ApiResponse(
        data=PokeListResponse(items=[_poke_response(p, p.from_user, p.to_user) for p in pokes])
    )
