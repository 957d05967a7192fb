"""Interest tags and discovery of users worth poking."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import InternalServiceError, ValidationError
from app.models.user import User, UserInterest

logger = logging.getLogger(__name__)

MAX_INTEREST_LENGTH = 50
MAX_INTERESTS = 20


def normalize_interests(interests: Iterable[str]) -> list[str]:
    """Lower-case, strip and de-duplicate, keeping first-seen order."""
    seen: list[str] = []
    for raw in interests:
        interest = raw.strip().lower()
        if not interest or interest in seen:
            continue
        if len(interest) > MAX_INTEREST_LENGTH:
            raise ValidationError(
                f"Interest '{interest[:20]}...' exceeds {MAX_INTEREST_LENGTH} characters",
                code="INVALID_INTEREST",
            )
        seen.append(interest)
    if len(seen) > MAX_INTERESTS:
        raise ValidationError(
            f"At most {MAX_INTERESTS} interests are allowed", code="TOO_MANY_INTERESTS"
        )
    return seen


@dataclass
class DiscoveredUser:
    user: User
    shared_interests: list[str] = field(default_factory=list)

    @property
    def shared_count(self) -> int:
        return len(self.shared_interests)


class MatchingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_interests(self, user_id: UUID) -> list[str]:
        result = await self.db.execute(
            select(UserInterest.interest)
            .where(UserInterest.user_id == user_id)
            .order_by(UserInterest.interest)
        )
        return list(result.scalars().all())

    async def set_user_interests(self, user_id: UUID, interests: Iterable[str]) -> list[str]:
        """Replace the user's interests in a single transaction."""
        normalized = normalize_interests(interests)
        try:
            await self.db.execute(delete(UserInterest).where(UserInterest.user_id == user_id))
            self.db.add_all(
                UserInterest(user_id=user_id, interest=interest) for interest in normalized
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("failed to set interests user=%s: %s", user_id, exc)
            raise InternalServiceError("Failed to update interests") from exc
        return sorted(normalized)

    async def discover_users(
        self,
        user_id: UUID,
        interests: Iterable[str] | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[DiscoveredUser]:
        """
        Other poke-enabled users sharing ``interests`` (default: the caller's).

        Ordered by number of shared interests, most first, then username.
        """
        wanted = normalize_interests(interests) if interests else []
        if not wanted:
            wanted = await self.get_user_interests(user_id)
        if not wanted:
            return []

        shared_count = func.count(UserInterest.interest).label("shared_count")
        result = await self.db.execute(
            select(User, shared_count)
            .join(UserInterest, UserInterest.user_id == User.id)
            .where(
                User.id != user_id,
                User.poke_enabled.is_(True),
                UserInterest.interest.in_(wanted),
            )
            .group_by(User.id)
            .order_by(shared_count.desc(), User.username)
            .limit(limit)
            .offset(offset)
        )
        users = [row[0] for row in result.all()]
        if not users:
            return []

        interest_rows = await self.db.execute(
            select(UserInterest.user_id, UserInterest.interest)
            .where(
                UserInterest.user_id.in_([u.id for u in users]),
                UserInterest.interest.in_(wanted),
            )
            .order_by(UserInterest.interest)
        )
        shared: dict[UUID, list[str]] = {}
        for row_user_id, interest in interest_rows.all():
            shared.setdefault(row_user_id, []).append(interest)

        return [DiscoveredUser(user=u, shared_interests=shared.get(u.id, [])) for u in users]
