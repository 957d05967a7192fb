"""Poke matching state machine.

A poke moves ``pending -> accepted -> matched``, ``pending -> matched``,
``pending -> declined`` or ``pending|accepted -> expired``. Two users are
matched once each has accepted a poke from the other, at which point a DM
channel is opened for the pair.

Unlike the Redis-backed limiter this service fails closed: a store error
rolls the session back and surfaces as ``InternalServiceError``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import Settings, settings as default_settings
from app.database import upsert_insert
from app.errors import (
    ConflictError,
    ExpiredError,
    InternalServiceError,
    NotFoundError,
    ValidationError,
)
from app.models.poke import (
    POKE_ACCEPTED,
    POKE_DECLINED,
    POKE_EXPIRED,
    POKE_MATCHED,
    POKE_OPEN_STATUSES,
    POKE_PENDING,
    DMChannel,
    Poke,
)
from app.models.user import User
from app.schemas.pokes import PokeAction
from app.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class PokeResponseResult:
    poke: Poke
    matched: bool
    channel_id: UUID | None = None


def _between(user_a: UUID, user_b: UUID):
    return or_(
        and_(Poke.from_user_id == user_a, Poke.to_user_id == user_b),
        and_(Poke.from_user_id == user_b, Poke.to_user_id == user_a),
    )


class PokeService:
    """Create, answer and expire pokes."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or default_settings

    async def send_poke(self, from_user_id: UUID, to_user_id: UUID, shared_interest: str) -> Poke:
        """
        Poke ``to_user_id`` over ``shared_interest``.

        Raises:
            ValidationError: SELF_POKE
            NotFoundError: USER_NOT_FOUND, POKES_DISABLED
            ConflictError: POKE_EXISTS when an open poke already links the pair
        """
        if from_user_id == to_user_id:
            raise ValidationError("You cannot poke yourself", code="SELF_POKE")

        try:
            recipient = await self.db.get(User, to_user_id)
            if recipient is None:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")
            if not recipient.poke_enabled:
                raise NotFoundError("This user is not accepting pokes", code="POKES_DISABLED")

            now = utcnow()
            if await self._expire_stale_between(from_user_id, to_user_id, now):
                await self.db.commit()

            existing = await self.db.execute(
                select(Poke.id)
                .where(
                    Poke.expires_at > now,
                    or_(
                        and_(Poke.status == POKE_PENDING, _between(from_user_id, to_user_id)),
                        and_(
                            Poke.status == POKE_ACCEPTED,
                            Poke.from_user_id == from_user_id,
                            Poke.to_user_id == to_user_id,
                        ),
                    ),
                )
                .limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(
                    "A poke between you and this user is already open", code="POKE_EXISTS"
                )

            poke = Poke(
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                shared_interest=shared_interest.strip().lower(),
                status=POKE_PENDING,
                created_at=now,
                expires_at=now + timedelta(hours=self.settings.poke_expiration_hours),
            )
            self.db.add(poke)
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._store_failure("send poke", exc) from exc

        logger.info("poke sent id=%s from=%s to=%s", poke.id, from_user_id, to_user_id)
        return poke

    async def respond_to_poke(
        self, poke_id: UUID, user_id: UUID, action: PokeAction | str
    ) -> PokeResponseResult:
        """
        Accept or decline a pending poke addressed to ``user_id``.

        Accepting while the sender holds an open poke from ``user_id`` matches
        the pair and opens their DM channel in the same transaction. The poke
        and its reverse are locked together in id order, so crossing accepts
        serialize instead of deadlocking.
        """
        action = PokeAction(action)

        try:
            poke = await self.db.get(Poke, poke_id)
            if poke is None:
                raise NotFoundError("Poke not found", code="POKE_NOT_FOUND")
            if poke.to_user_id != user_id:
                raise NotFoundError("Poke not found", code="NOT_RECIPIENT")

            now = utcnow()
            reverse_id = None
            if action is PokeAction.ACCEPT:
                reverse_id = await self.db.scalar(
                    select(Poke.id)
                    .where(
                        Poke.from_user_id == poke.to_user_id,
                        Poke.to_user_id == poke.from_user_id,
                        Poke.status.in_(POKE_OPEN_STATUSES),
                        Poke.expires_at > now,
                    )
                    .order_by(Poke.created_at.desc())
                    .limit(1)
                )
            locked = await self._lock_pokes(poke_id, reverse_id)
            poke = locked.get(poke_id)
            if poke is None:
                raise NotFoundError("Poke not found", code="POKE_NOT_FOUND")

            if poke.status != POKE_PENDING:
                raise ConflictError(
                    f"Poke has already been {poke.status}", code="POKE_ALREADY_RESPONDED"
                )
            if as_utc(poke.expires_at) <= now:
                poke.status = POKE_EXPIRED
                await self.db.commit()
                raise ExpiredError("Poke has expired", code="POKE_EXPIRED")

            if action is PokeAction.DECLINE:
                poke.status = POKE_DECLINED
                poke.responded_at = now
                await self.db.commit()
                logger.info("poke declined id=%s", poke.id)
                return PokeResponseResult(poke=poke, matched=False)

            reverse = locked.get(reverse_id)
            if reverse is not None and (
                reverse.status not in POKE_OPEN_STATUSES or as_utc(reverse.expires_at) <= now
            ):
                reverse = None

            if reverse is None:
                poke.status = POKE_ACCEPTED
                poke.responded_at = now
                await self.db.commit()
                logger.info("poke accepted id=%s", poke.id)
                return PokeResponseResult(poke=poke, matched=False)

            poke.status = POKE_MATCHED
            poke.responded_at = now
            reverse.status = POKE_MATCHED
            reverse.responded_at = now
            cafe_id = await self.db.scalar(select(User.cafe_id).where(User.id == user_id))
            channel_id = await self._open_channel(poke.from_user_id, poke.to_user_id, cafe_id)
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._store_failure("respond to poke", exc) from exc

        logger.info(
            "poke matched id=%s reverse=%s channel=%s", poke.id, reverse.id, channel_id
        )
        return PokeResponseResult(poke=poke, matched=True, channel_id=channel_id)

    async def get_pending_pokes(self, user_id: UUID) -> list[Poke]:
        """Unexpired pending pokes received by ``user_id``, newest first."""
        return await self._list_pending(Poke.to_user_id == user_id)

    async def get_sent_pokes(self, user_id: UUID) -> list[Poke]:
        """Unexpired pending pokes sent by ``user_id``, newest first."""
        return await self._list_pending(Poke.from_user_id == user_id)

    async def expire_old_pokes(self) -> int:
        """Mark every open poke past its expiry as expired. Returns rows changed."""
        now = utcnow()
        try:
            result = await self.db.execute(
                update(Poke)
                .where(Poke.status.in_(POKE_OPEN_STATUSES), Poke.expires_at < now)
                .values(status=POKE_EXPIRED)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._store_failure("expire pokes", exc) from exc
        return result.rowcount or 0

    async def check_rate_limit(
        self, user_id: UUID, window: timedelta | None = None, max_pokes: int | None = None
    ) -> bool:
        """Whether ``user_id`` created fewer than ``max_pokes`` pokes inside ``window``."""
        if window is None:
            window = timedelta(seconds=self.settings.poke_window)
        max_pokes = max_pokes if max_pokes is not None else self.settings.poke_count
        since = utcnow() - window
        try:
            count = await self.db.scalar(
                select(func.count(Poke.id)).where(
                    Poke.from_user_id == user_id, Poke.created_at > since
                )
            )
        except SQLAlchemyError as exc:
            raise await self._store_failure("count pokes", exc) from exc
        return (count or 0) < max_pokes

    # --- Helpers ---

    async def _list_pending(self, condition) -> list[Poke]:
        try:
            result = await self.db.execute(
                select(Poke)
                .options(selectinload(Poke.from_user), selectinload(Poke.to_user))
                .where(condition, Poke.status == POKE_PENDING, Poke.expires_at > utcnow())
                .order_by(Poke.created_at.desc())
            )
        except SQLAlchemyError as exc:
            raise await self._store_failure("list pokes", exc) from exc
        return list(result.scalars().all())

    async def _lock_pokes(self, *poke_ids: UUID | None) -> dict[UUID, Poke]:
        """Lock the given pokes ``FOR UPDATE`` in id order and reload them."""
        ids = sorted({poke_id for poke_id in poke_ids if poke_id is not None})
        result = await self.db.execute(
            select(Poke)
            .where(Poke.id.in_(ids))
            .order_by(Poke.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {poke.id: poke for poke in result.scalars()}

    async def _expire_stale_between(self, user_a: UUID, user_b: UUID, now: datetime) -> int:
        result = await self.db.execute(
            update(Poke)
            .where(
                _between(user_a, user_b),
                Poke.status.in_(POKE_OPEN_STATUSES),
                Poke.expires_at <= now,
            )
            .values(status=POKE_EXPIRED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def _open_channel(self, user_a: UUID, user_b: UUID, cafe_id: UUID | None) -> UUID:
        """Insert the pair's DM channel, or return the existing one."""
        user1_id, user2_id = sorted((user_a, user_b))
        stmt = upsert_insert(self.db, DMChannel).values(
            user1_id=user1_id,
            user2_id=user2_id,
            cafe_id=cafe_id,
            created_at=utcnow(),
        )
        # No-op update so RETURNING yields the existing row's id.
        stmt = stmt.on_conflict_do_update(
            index_elements=["user1_id", "user2_id"],
            set_={"user1_id": stmt.excluded.user1_id},
        ).returning(DMChannel.id)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def _store_failure(self, operation: str, exc: SQLAlchemyError) -> InternalServiceError:
        await self.db.rollback()
        logger.error("failed to %s: %s", operation, exc)
        return InternalServiceError(f"Failed to {operation}")
