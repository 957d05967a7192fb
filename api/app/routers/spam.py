"""Spam screening and mute status for the authenticated user."""

from fastapi import APIRouter, Depends, Request, status

from app.auth.dependencies import get_current_user
from app.config import settings
from app.dependencies import get_mute_registry, get_spam_classifier
from app.middleware.rate_limit import limiter
from app.models.user import APIKey, User
from app.schemas.common import ApiResponse
from app.schemas.spam import (
    MessageMetadata,
    MuteInfoResponse,
    SpamCheckRequest,
    SpamCheckResult,
)
from app.services.mutes import MuteRegistry
from app.services.spam import SpamClassifier
from app.timeutils import utcnow

router = APIRouter(prefix="/api/v1/spam", tags=["Spam"])


@router.post(
    "/check",
    response_model=ApiResponse[SpamCheckResult],
    status_code=status.HTTP_200_OK,
)
@limiter.limit(settings.spam_check_ip_rate_limit)
async def check_spam(
    request: Request,
    data: SpamCheckRequest,
    auth: tuple[User, APIKey] = Depends(get_current_user),
    classifier: SpamClassifier = Depends(get_spam_classifier),
) -> ApiResponse[SpamCheckResult]:
    """
    Classify a message as if it were about to be posted.

    This counts as a send for duplicate detection, and a ``mute`` verdict
    mutes the caller.
    """
    user, _ = auth
    result = await classifier.check_spam(
        MessageMetadata(
            content=data.content,
            user_id=str(user.id),
            timestamp=utcnow(),
            cafe_id=data.cafe_id or (str(user.cafe_id) if user.cafe_id else None),
        )
    )
    return ApiResponse(data=result)


@router.get(
    "/mute",
    response_model=ApiResponse[MuteInfoResponse],
    status_code=status.HTTP_200_OK,
)
async def get_my_mute(
    auth: tuple[User, APIKey] = Depends(get_current_user),
    mutes: MuteRegistry = Depends(get_mute_registry),
) -> ApiResponse[MuteInfoResponse]:
    user, _ = auth
    muted = await mutes.is_user_muted(str(user.id))
    record = await mutes.get_mute_info(str(user.id)) if muted else None
    return ApiResponse(data=MuteInfoResponse(muted=muted, mute=record))
