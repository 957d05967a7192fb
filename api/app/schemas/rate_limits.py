"""Rate limit Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Resource(str, Enum):
    """Rate-limited resource types."""

    MESSAGE = "message"
    AGENT = "agent"
    POKE = "poke"


class UserTier(str, Enum):
    """Tiers with distinct message limits."""

    FREE = "free"
    BADGE_HOLDER = "badge_holder"


class RateLimitResult(BaseModel):
    """Outcome of a single rate limit check."""

    allowed: bool
    remaining: int
    reset_at: datetime
    retry_after: int | None = None
    reason: str | None = None


class MessageLimitStatus(BaseModel):
    allowed: bool
    remaining: int
    reset_at: datetime
    cooldown: int


class AgentPersonalStatus(BaseModel):
    allowed: bool
    remaining: int
    reset_at: datetime


class AgentGlobalStatus(BaseModel):
    allowed: bool
    next_available: datetime


class AgentLimitStatus(BaseModel):
    personal: AgentPersonalStatus
    global_cooldown: AgentGlobalStatus


class PokeLimitStatus(BaseModel):
    allowed: bool
    remaining: int
    reset_at: datetime


class RateLimitStatus(BaseModel):
    """Aggregate status across every resource for one user."""

    message: MessageLimitStatus
    agent: AgentLimitStatus
    poke: PokeLimitStatus


class RateLimitCheckRequest(BaseModel):
    """Request to check or consume a resource for the authenticated user."""

    resource: Resource
    session_id: str | None = Field(default=None, max_length=128)


class ConsumeResponse(BaseModel):
    consumed: bool
    remaining: int
    reset_at: datetime


class ResetRateLimitRequest(BaseModel):
    """Admin request to clear rate limit state."""

    user_id: str = Field(min_length=1)
    resource: Resource | None = None


class ResetRateLimitResponse(BaseModel):
    reset: bool
    user_id: str
    resource: str
