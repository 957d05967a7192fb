"""Poke and DM channel models for interest-based matching."""

from uuid import uuid4

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base
from app.timeutils import utcnow

POKE_PENDING = "pending"
POKE_ACCEPTED = "accepted"
POKE_DECLINED = "declined"
POKE_EXPIRED = "expired"
POKE_MATCHED = "matched"

# Statuses a poke can still leave without a response from its recipient.
POKE_OPEN_STATUSES = (POKE_PENDING, POKE_ACCEPTED)


class Poke(Base):
    """
    One-directional introduction request between two users.

    ``accepted`` means the recipient said yes but has not poked back yet;
    it becomes ``matched`` once the reverse poke is accepted too.
    """

    __tablename__ = "pokes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    from_user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    to_user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    shared_interest = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=POKE_PENDING)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    responded_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'expired', 'matched')",
            name="ck_pokes_status",
        ),
        CheckConstraint("from_user_id <> to_user_id", name="ck_pokes_no_self_poke"),
        Index("idx_pokes_to_user_status", to_user_id, status),
        Index("idx_pokes_from_user", from_user_id, created_at.desc()),
        Index("idx_pokes_expires_at", expires_at),
    )

    from_user = relationship("User", foreign_keys=[from_user_id])
    to_user = relationship("User", foreign_keys=[to_user_id])


class DMChannel(Base):
    """Private channel between two matched users, one per unordered pair."""

    __tablename__ = "dm_channels"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user1_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    user2_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    cafe_id = Column(Uuid(as_uuid=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    last_message_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_dm_channels_user_pair"),
        CheckConstraint("user1_id < user2_id", name="ck_dm_channels_ordered_users"),
    )

    user1 = relationship("User", foreign_keys=[user1_id])
    user2 = relationship("User", foreign_keys=[user2_id])
