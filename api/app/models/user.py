"""User, UserRole, UserInterest and APIKey models."""

from uuid import uuid4

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base
from app.timeutils import utcnow


class User(Base):
    """Café patron account."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    username = Column(String(50), nullable=False)
    display_name = Column(Text)
    cafe_id = Column(Uuid(as_uuid=True))
    tier = Column(String(20), nullable=False, default="free")
    poke_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    last_seen_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        CheckConstraint("tier IN ('free', 'badge_holder')", name="ck_users_tier"),
        UniqueConstraint("username", name="uq_users_username"),
    )

    roles = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="UserRole.user_id",
    )
    api_keys = relationship("APIKey", back_populates="user", cascade="all, delete-orphan")
    interests = relationship(
        "UserInterest",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="UserInterest.interest",
    )


class UserRole(Base):
    """User role assignment model. The ``admin`` role grants moderation access."""

    __tablename__ = "user_roles"

    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role = Column(String, primary_key=True)
    granted_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    granted_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"))

    user = relationship("User", back_populates="roles", foreign_keys=[user_id])


class UserInterest(Base):
    """Interest tag used for discovery and pokes. Stored lower-cased."""

    __tablename__ = "user_interests"

    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    interest = Column(String(50), primary_key=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    __table_args__ = (Index("idx_user_interests_interest", interest),)

    user = relationship("User", back_populates="interests")


class APIKey(Base):
    """API key used by café clients to authenticate a user."""

    __tablename__ = "api_keys"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"))
    key_hash = Column(Text, nullable=False)
    key_prefix = Column(String(12), nullable=False)
    name = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    last_used_at = Column(TIMESTAMP(timezone=True))
    expires_at = Column(TIMESTAMP(timezone=True))
    revoked_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (Index("idx_api_keys_key_hash", key_hash),)

    user = relationship("User", back_populates="api_keys")
