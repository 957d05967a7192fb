"""Chat room Pydantic schemas."""

from pydantic import BaseModel, Field

from app.schemas.spam import SpamViolation


class PostMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class ChatMessageItem(BaseModel):
    id: str
    user_id: str
    username: str
    cafe_id: str | None
    content: str
    created_at: str


class PostMessageResponse(BaseModel):
    """A stored message, with a warning when the spam check flagged it lightly."""

    message: ChatMessageItem
    warning: str | None = None
    violations: list[SpamViolation] = []


class ListMessagesResponse(BaseModel):
    items: list[ChatMessageItem]
    next_cursor: str | None
    has_more: bool
