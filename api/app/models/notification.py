"""Notification model for the inbox system."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base
from app.timeutils import utcnow


class Notification(Base):
    """User notification model."""

    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    notification_type = Column(String, nullable=False)  # "poke_received", "poke_matched"
    title = Column(Text, nullable=False)
    body = Column(Text)
    resource_type = Column(String)  # "poke", "dm_channel"
    resource_id = Column(Uuid(as_uuid=True))
    payload = Column(JSON, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    read_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        Index("idx_notifications_user", user_id, created_at.desc()),
    )

    user = relationship("User", foreign_keys=[user_id])
