"""Users router: the caller's account, interests and discovery."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.dependencies import get_matching_service
from app.models.user import APIKey, User
from app.schemas.common import ApiResponse
from app.schemas.users import (
    DiscoveredUserItem,
    DiscoverUsersResponse,
    InterestsRequest,
    InterestsResponse,
    UpdateMeRequest,
    UserMeResponse,
)
from app.services.matching import MatchingService

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _me_response(user: User, interests: list[str]) -> UserMeResponse:
    return UserMeResponse(
        user_id=str(user.id),
        username=user.username,
        display_name=user.display_name,
        cafe_id=str(user.cafe_id) if user.cafe_id else None,
        tier=user.tier,
        poke_enabled=user.poke_enabled,
        roles=[role.role for role in user.roles],
        interests=interests,
    )


@router.get(
    "/me",
    response_model=ApiResponse[UserMeResponse],
    status_code=status.HTTP_200_OK,
)
async def get_me(
    auth: tuple[User, APIKey] = Depends(get_current_user),
    matching: MatchingService = Depends(get_matching_service),
) -> ApiResponse[UserMeResponse]:
    """Get the authenticated user's account."""
    user, _ = auth
    interests = await matching.get_user_interests(user.id)
    return ApiResponse(data=_me_response(user, interests))


@router.patch(
    "/me",
    response_model=ApiResponse[UserMeResponse],
    status_code=status.HTTP_200_OK,
)
async def update_me(
    data: UpdateMeRequest,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
    matching: MatchingService = Depends(get_matching_service),
) -> ApiResponse[UserMeResponse]:
    """
    Update display name or poke preference.

    Turning pokes off hides you from discovery and refuses new pokes.
    """
    user, _ = auth

    if "display_name" in data.model_fields_set:
        user.display_name = data.display_name
    if data.poke_enabled is not None:
        user.poke_enabled = data.poke_enabled

    await db.commit()

    interests = await matching.get_user_interests(user.id)
    return ApiResponse(data=_me_response(user, interests))


@router.get(
    "/me/interests",
    response_model=ApiResponse[InterestsResponse],
    status_code=status.HTTP_200_OK,
)
async def get_my_interests(
    auth: tuple[User, APIKey] = Depends(get_current_user),
    matching: MatchingService = Depends(get_matching_service),
) -> ApiResponse[InterestsResponse]:
    user, _ = auth
    return ApiResponse(data=InterestsResponse(interests=await matching.get_user_interests(user.id)))


@router.put(
    "/me/interests",
    response_model=ApiResponse[InterestsResponse],
    status_code=status.HTTP_200_OK,
)
async def set_my_interests(
    data: InterestsRequest,
    auth: tuple[User, APIKey] = Depends(get_current_user),
    matching: MatchingService = Depends(get_matching_service),
) -> ApiResponse[InterestsResponse]:
    """Replace your interests. Tags are lower-cased and de-duplicated."""
    user, _ = auth
    interests = await matching.set_user_interests(user.id, data.interests)
    return ApiResponse(data=InterestsResponse(interests=interests))


@router.get(
    "/discover",
    response_model=ApiResponse[DiscoverUsersResponse],
    status_code=status.HTTP_200_OK,
)
async def discover_users(
    auth: tuple[User, APIKey] = Depends(get_current_user),
    matching: MatchingService = Depends(get_matching_service),
    interests: str | None = Query(default=None, description="Comma-separated interests"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> ApiResponse[DiscoverUsersResponse]:
    """
    Find users sharing your interests, or the ones given in ``interests``.

    Ordered by the number of shared interests, then username.
    """
    user, _ = auth
    wanted = interests.split(",") if interests else None

    found = await matching.discover_users(user.id, wanted, limit=limit, offset=offset)
    items = [
        DiscoveredUserItem(
            user_id=str(match.user.id),
            username=match.user.username,
            display_name=match.user.display_name,
            shared_interests=match.shared_interests,
            shared_count=match.shared_count,
        )
        for match in found
    ]
    return ApiResponse(data=DiscoverUsersResponse(items=items))
