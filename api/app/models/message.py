"""Chat message model for the shared café room."""

from uuid import uuid4

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base
from app.timeutils import utcnow


class ChatMessage(Base):
    """Message posted to a café's shared chat room."""

    __tablename__ = "chat_messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    cafe_id = Column(Uuid(as_uuid=True))
    content = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("length(content) <= 2000", name="ck_chat_messages_content_length"),
        Index("idx_chat_messages_cafe_created", cafe_id, created_at.desc()),
    )

    author = relationship("User", foreign_keys=[user_id])
