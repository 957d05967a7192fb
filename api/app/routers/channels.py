"""DM channels opened by matched pokes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.models.poke import DMChannel
from app.models.user import APIKey, User
from app.schemas.common import ApiResponse
from app.schemas.pokes import DMChannelItem, DMChannelListResponse, PokeUser
from app.timeutils import isoformat

router = APIRouter(prefix="/api/v1/channels", tags=["Channels"])


@router.get(
    "",
    response_model=ApiResponse[DMChannelListResponse],
    status_code=status.HTTP_200_OK,
)
async def list_channels(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> ApiResponse[DMChannelListResponse]:
    """List your DM channels, most recently active first."""
    user, _ = auth

    result = await db.execute(
        select(DMChannel)
        .options(selectinload(DMChannel.user1), selectinload(DMChannel.user2))
        .where(or_(DMChannel.user1_id == user.id, DMChannel.user2_id == user.id))
        .order_by(func.coalesce(DMChannel.last_message_at, DMChannel.created_at).desc())
    )
    channels = result.scalars().all()

    items = [
        DMChannelItem(
            id=str(channel.id),
            other_user=PokeUser.from_user(
                channel.user2 if channel.user1_id == user.id else channel.user1
            ),
            cafe_id=str(channel.cafe_id) if channel.cafe_id else None,
            created_at=isoformat(channel.created_at),
            last_message_at=isoformat(channel.last_message_at),
        )
        for channel in channels
    ]
    return ApiResponse(data=DMChannelListResponse(items=items))
