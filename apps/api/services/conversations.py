"""Owner-scoped storage of chats and their turns.

``ConversationStore.load`` returns a ``ChatThreadState``: a detached,
in-memory copy of the chat. ``append_turn`` only touches that copy; nothing
reaches the database until ``save`` runs, which writes the pending turns and
bumps the chat version in one transaction, guarded by the version that was
loaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.chat import Chat
from models.chat_turn import ChatTurn
from services.errors import NotFoundError
from services.responses import to_epoch_ms

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
DEFAULT_CHAT_NAME = "New chat"


class ChatVersionConflict(Exception):
    """The chat was saved by another request since it was loaded."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TurnRecord:
    role: str
    content: str
    timestamp: datetime
    is_image: bool = False
    is_published: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "isImage": self.is_image,
            "isPublished": self.is_published,
            "timestamp": to_epoch_ms(self.timestamp),
        }


@dataclass
class ChatThreadState:
    id: str
    owner_id: str
    display_name: str
    version: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    turns: List[TurnRecord] = field(default_factory=list)
    persisted_count: int = 0

    @property
    def pending_turns(self) -> List[TurnRecord]:
        return self.turns[self.persisted_count:]

    def append_turn(self, role: str, content: str, *, is_image: bool = False) -> TurnRecord:
        if role not in (ROLE_USER, ROLE_ASSISTANT):
            raise ValueError(f"Unsupported turn role: {role}")
        turn = TurnRecord(role=role, content=content, timestamp=_utcnow(), is_image=is_image)
        self.turns.append(turn)
        return turn

    def to_dict(self, include_turns: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "ownerId": self.owner_id,
            "displayName": self.display_name,
            "createdAt": to_epoch_ms(self.created_at),
            "updatedAt": to_epoch_ms(self.updated_at),
        }
        if include_turns:
            payload["turns"] = [turn.to_dict() for turn in self.turns]
        return payload


def _state_from_rows(chat: Chat, turns: List[ChatTurn]) -> ChatThreadState:
    records = [
        TurnRecord(
            role=row.role,
            content=row.content,
            timestamp=row.timestamp,
            is_image=bool(row.is_image),
            is_published=bool(row.is_published),
        )
        for row in turns
    ]
    return ChatThreadState(
        id=chat.id,
        owner_id=chat.user_id,
        display_name=chat.name,
        version=int(chat.version or 1),
        created_at=chat.created_at,
        updated_at=chat.updated_at,
        turns=records,
        persisted_count=len(records),
    )


class ConversationStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, chat_id: str, owner_id: str) -> Chat:
        result = await self.db.execute(
            select(Chat)
            .where(Chat.id == chat_id, Chat.user_id == owner_id)
            .execution_options(populate_existing=True)
        )
        chat = result.scalar_one_or_none()
        if not chat:
            # Chats owned by someone else are reported exactly like missing ones.
            raise NotFoundError("Chat not found")
        return chat

    async def load(self, chat_id: str, owner_id: str) -> ChatThreadState:
        chat = await self._get_row(chat_id, owner_id)
        result = await self.db.execute(
            select(ChatTurn).where(ChatTurn.chat_id == chat.id).order_by(ChatTurn.position.asc())
        )
        return _state_from_rows(chat, list(result.scalars().all()))

    async def create(self, owner_id: str, owner_name: Optional[str] = None, name: str = DEFAULT_CHAT_NAME) -> ChatThreadState:
        now = _utcnow()
        chat = Chat(user_id=owner_id, user_name=owner_name, name=name, version=1, created_at=now, updated_at=now)
        self.db.add(chat)
        await self.db.commit()
        logger.info("chat_created user=%s chat=%s", owner_id, chat.id)
        return _state_from_rows(chat, [])

    async def list_for_owner(self, owner_id: str) -> List[ChatThreadState]:
        result = await self.db.execute(
            select(Chat).where(Chat.user_id == owner_id).order_by(Chat.updated_at.desc())
        )
        return [_state_from_rows(chat, []) for chat in result.scalars().all()]

    async def delete(self, chat_id: str, owner_id: str) -> None:
        chat = await self._get_row(chat_id, owner_id)
        await self.db.execute(delete(ChatTurn).where(ChatTurn.chat_id == chat.id))
        await self.db.execute(delete(Chat).where(Chat.id == chat.id, Chat.user_id == owner_id))
        await self.db.commit()
        logger.info("chat_deleted user=%s chat=%s", owner_id, chat_id)

    async def save(self, state: ChatThreadState) -> ChatThreadState:
        """Write pending turns; raises ``ChatVersionConflict`` if the chat moved on."""
        pending = state.pending_turns
        now = _utcnow()
        try:
            result = await self.db.execute(
                update(Chat)
                .where(
                    Chat.id == state.id,
                    Chat.user_id == state.owner_id,
                    Chat.version == state.version,
                )
                .values(version=state.version + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ChatVersionConflict(f"chat {state.id} is no longer at version {state.version}")

            for offset, turn in enumerate(pending):
                self.db.add(
                    ChatTurn(
                        chat_id=state.id,
                        position=state.persisted_count + offset,
                        role=turn.role,
                        content=turn.content,
                        is_image=turn.is_image,
                        is_published=turn.is_published,
                        timestamp=turn.timestamp,
                    )
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        state.version += 1
        state.updated_at = now
        state.persisted_count = len(state.turns)
        return state

    async def list_published_images(self, limit: int = 100) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(ChatTurn.content, Chat.user_name)
            .join(Chat, Chat.id == ChatTurn.chat_id)
            .where(ChatTurn.is_image.is_(True), ChatTurn.is_published.is_(True))
            .order_by(ChatTurn.timestamp.desc())
            .limit(limit)
        )
        return [{"imageUrl": content, "userName": user_name} for content, user_name in result.all()]
