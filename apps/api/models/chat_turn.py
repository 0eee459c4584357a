"""ChatTurn model: one append-only message within a chat."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base


class ChatTurn(Base):
    """User or assistant message, ordered by position within its chat."""

    __tablename__ = "chat_turns"
    __table_args__ = (UniqueConstraint("chat_id", "position", name="uq_chat_turns_chat_position"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    chat_id = Column(String(24), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    role = Column(String, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    is_image = Column(Boolean, nullable=False, default=False)
    is_published = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    chat = relationship("Chat", back_populates="turns")
