"""Chat model for owned conversation threads."""

import secrets
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database import Base


def new_chat_id() -> str:
    return secrets.token_hex(12)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Chat(Base):
    """Conversation thread owned by a single user."""

    __tablename__ = "chats"

    id = Column(String(24), primary_key=True, default=new_chat_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    user_name = Column(String, nullable=True)
    name = Column(String, nullable=False, default="New chat")
    version = Column(Integer, nullable=False, default=1)  # bumped by every save
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    user = relationship("User", back_populates="chats")
    turns = relationship(
        "ChatTurn",
        back_populates="chat",
        order_by="ChatTurn.position",
        cascade="all, delete-orphan",
    )
