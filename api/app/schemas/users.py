"""User-related Pydantic schemas."""

from pydantic import BaseModel, Field


class UserMeResponse(BaseModel):
    """Response for GET /users/me endpoint."""

    user_id: str
    username: str
    display_name: str | None
    cafe_id: str | None
    tier: str
    poke_enabled: bool
    roles: list[str]
    interests: list[str]


class UpdateMeRequest(BaseModel):
    """Request to update the caller's own account. Omitted fields are left alone."""

    display_name: str | None = Field(default=None, max_length=100)
    poke_enabled: bool | None = None


class InterestsRequest(BaseModel):
    interests: list[str] = Field(max_length=20)


class InterestsResponse(BaseModel):
    interests: list[str]


class DiscoveredUserItem(BaseModel):
    """Another user sharing at least one interest with the query."""

    user_id: str
    username: str
    display_name: str | None
    shared_interests: list[str]
    shared_count: int


class DiscoverUsersResponse(BaseModel):
    items: list[DiscoveredUserItem]
