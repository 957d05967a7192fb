"""Admin-related Pydantic schemas."""

from pydantic import BaseModel


class AdminUserInfo(BaseModel):
    """User information for admin endpoints."""

    user_id: str
    username: str
    display_name: str | None
    tier: str
    poke_enabled: bool
    roles: list[str]
    created_at: str
    last_seen_at: str | None


class ListUsersResponse(BaseModel):
    """Response for GET /admin/users endpoint."""

    items: list[AdminUserInfo]


class ExpirePokesResponse(BaseModel):
    expired_count: int
