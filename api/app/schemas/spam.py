"""Spam detection and mute Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ViolationType(str, Enum):
    DUPLICATE_MESSAGE = "duplicate_message"
    EXCESSIVE_CAPS = "excessive_caps"
    URL_SPAM = "url_spam"
    REPEATED_CHARACTERS = "repeated_characters"
    PROFANITY = "profanity"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SpamAction(str, Enum):
    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"
    MUTE = "mute"


class SpamViolation(BaseModel):
    """A single heuristic hit on a message."""

    type: ViolationType
    severity: Severity
    details: str


class MessageMetadata(BaseModel):
    """Message under classification."""

    content: str
    user_id: str
    timestamp: datetime
    cafe_id: str | None = None


class SpamCheckResult(BaseModel):
    is_spam: bool
    violations: list[SpamViolation]
    action: SpamAction
    message: str | None = None


class MuteRecord(BaseModel):
    """Temporary mute persisted in Redis until its TTL expires."""

    user_id: str
    muted_until: datetime
    reason: str
    violations: list[SpamViolation] = []


class SpamCheckRequest(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    cafe_id: str | None = None


class MuteInfoResponse(BaseModel):
    muted: bool
    mute: MuteRecord | None = None


class MuteUserRequest(BaseModel):
    """Admin request to mute a user manually."""

    reason: str = Field(default="Muted by moderator", min_length=1, max_length=500)
    duration_seconds: int | None = Field(default=None, ge=60, le=30 * 86400)


class UnmuteResponse(BaseModel):
    unmuted: bool
    user_id: str


class ProfanityWordRequest(BaseModel):
    word: str = Field(min_length=1, max_length=50, pattern=r"^[\w'-]+$")


class ProfanityListResponse(BaseModel):
    words: list[str]
