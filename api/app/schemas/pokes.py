"""Poke and DM channel Pydantic schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PokeAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


class SendPokeRequest(BaseModel):
    """Request to poke another user over a shared interest."""

    to_user_id: UUID
    shared_interest: str = Field(min_length=1, max_length=50)


class RespondToPokeRequest(BaseModel):
    action: PokeAction


class PokeUser(BaseModel):
    user_id: str
    username: str
    display_name: str | None

    @classmethod
    def from_user(cls, user) -> "PokeUser":
        return cls(user_id=str(user.id), username=user.username, display_name=user.display_name)


class PokeResponse(BaseModel):
    """A poke as seen by one of its two participants."""

    id: str
    from_user: PokeUser
    to_user: PokeUser
    shared_interest: str
    status: str
    created_at: str
    expires_at: str
    responded_at: str | None


class PokeListResponse(BaseModel):
    items: list[PokeResponse]


class RespondToPokeResponse(BaseModel):
    poke: PokeResponse
    matched: bool
    channel_id: str | None = None


class DMChannelItem(BaseModel):
    id: str
    other_user: PokeUser
    cafe_id: str | None
    created_at: str
    last_message_at: str | None


class DMChannelListResponse(BaseModel):
    items: list[DMChannelItem]
