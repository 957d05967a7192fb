"""Inbox router for poke notifications."""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.errors import NotFoundError
from app.models.notification import Notification
from app.models.user import APIKey, User
from app.schemas.common import ApiResponse
from app.schemas.inbox import (
    ListNotificationsResponse,
    MarkReadResponse,
    NotificationItem,
)
from app.timeutils import isoformat

router = APIRouter(prefix="/api/v1/inbox", tags=["Inbox"])


@router.get(
    "/notifications",
    response_model=ApiResponse[ListNotificationsResponse],
    status_code=status.HTTP_200_OK,
)
async def list_notifications(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
    cursor: str | None = Query(default=None, description="Pagination cursor"),
    limit: int = Query(default=20, ge=1, le=100, description="Items per page"),
    unread_only: bool = Query(default=False, description="Show only unread notifications"),
) -> ApiResponse[ListNotificationsResponse]:
    """
    List notifications with cursor-based pagination.

    Returns notifications ordered by created_at descending.
    """
    user, _ = auth

    query = select(Notification).where(Notification.user_id == user.id)

    if unread_only:
        query = query.where(Notification.read_at.is_(None))

    # Apply cursor (cursor is the created_at timestamp)
    if cursor:
        try:
            query = query.where(Notification.created_at < datetime.fromisoformat(cursor))
        except ValueError:
            pass  # Invalid cursor, ignore

    query = query.order_by(Notification.created_at.desc()).limit(limit + 1)

    result = await db.execute(query)
    notifications = list(result.scalars().all())

    has_more = len(notifications) > limit
    if has_more:
        notifications = notifications[:limit]

    items = [
        NotificationItem(
            id=str(n.id),
            notification_type=n.notification_type,
            title=n.title,
            body=n.body,
            resource_type=n.resource_type,
            resource_id=str(n.resource_id) if n.resource_id else None,
            payload=n.payload or {},
            created_at=isoformat(n.created_at),
            read_at=isoformat(n.read_at),
        )
        for n in notifications
    ]

    next_cursor = isoformat(notifications[-1].created_at) if notifications and has_more else None

    return ApiResponse(
        data=ListNotificationsResponse(items=items, next_cursor=next_cursor, has_more=has_more)
    )


@router.post(
    "/notifications/{notification_id}/read",
    response_model=ApiResponse[MarkReadResponse],
    status_code=status.HTTP_200_OK,
)
async def mark_notification_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> ApiResponse[MarkReadResponse]:
    """Mark a single notification as read."""
    user, _ = auth

    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user.id,
        )
    )
    notification = result.scalar_one_or_none()

    if not notification:
        raise NotFoundError(f"Notification '{notification_id}' not found")

    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        await db.commit()

    return ApiResponse(
        data=MarkReadResponse(id=str(notification.id), read_at=isoformat(notification.read_at))
    )
