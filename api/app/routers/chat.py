"""Chat router for the shared café room."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.dependencies import get_rate_limiter, get_spam_classifier
from app.middleware.protection import protect_message
from app.models.message import ChatMessage
from app.models.user import APIKey, User
from app.schemas.chat import (
    ChatMessageItem,
    ListMessagesResponse,
    PostMessageRequest,
    PostMessageResponse,
)
from app.schemas.common import ApiResponse
from app.schemas.spam import SpamAction
from app.services.rate_limiter import RateLimiter
from app.services.spam import SpamClassifier
from app.timeutils import isoformat, utcnow

router = APIRouter(prefix="/api/v1/chat", tags=["Chat"])


def _message_item(message: ChatMessage, author: User) -> ChatMessageItem:
    return ChatMessageItem(
        id=str(message.id),
        user_id=str(message.user_id),
        username=author.username,
        cafe_id=str(message.cafe_id) if message.cafe_id else None,
        content=message.content,
        created_at=isoformat(message.created_at),
    )


@router.post(
    "/messages",
    response_model=ApiResponse[PostMessageResponse],
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    data: PostMessageRequest,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    classifier: SpamClassifier = Depends(get_spam_classifier),
) -> ApiResponse[PostMessageResponse]:
    """
    Post a message to your café's room.

    Rate limited per tier and screened for spam. A ``warn`` verdict still
    stores the message and returns the warning alongside it.
    """
    user, _ = auth

    verdict = await protect_message(limiter, classifier, user, data.content)

    message = ChatMessage(
        user_id=user.id,
        cafe_id=user.cafe_id,
        content=data.content,
        created_at=utcnow(),
    )
    db.add(message)
    await db.commit()

    await limiter.consume_message_token(str(user.id), user.tier)

    warned = verdict.action is SpamAction.WARN
    return ApiResponse(
        data=PostMessageResponse(
            message=_message_item(message, user),
            warning=verdict.message if warned else None,
            violations=verdict.violations if warned else [],
        )
    )


@router.get(
    "/messages",
    response_model=ApiResponse[ListMessagesResponse],
    status_code=status.HTTP_200_OK,
)
async def list_messages(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
    cursor: str | None = Query(default=None, description="Pagination cursor"),
    limit: int = Query(default=50, ge=1, le=100, description="Items per page"),
) -> ApiResponse[ListMessagesResponse]:
    """List messages in your café's room, newest first."""
    user, _ = auth

    query = select(ChatMessage).options(selectinload(ChatMessage.author))
    if user.cafe_id is None:
        query = query.where(ChatMessage.cafe_id.is_(None))
    else:
        query = query.where(ChatMessage.cafe_id == user.cafe_id)

    # Cursor is the created_at timestamp of the last item seen
    if cursor:
        try:
            query = query.where(ChatMessage.created_at < datetime.fromisoformat(cursor))
        except ValueError:
            pass  # Invalid cursor, ignore

    query = query.order_by(ChatMessage.created_at.desc()).limit(limit + 1)
    result = await db.execute(query)
    messages = list(result.scalars().all())

    has_more = len(messages) > limit
    if has_more:
        messages = messages[:limit]

    return ApiResponse(
        data=ListMessagesResponse(
            items=[_message_item(m, m.author) for m in messages],
            next_cursor=isoformat(messages[-1].created_at) if messages and has_more else None,
            has_more=has_more,
        )
    )
