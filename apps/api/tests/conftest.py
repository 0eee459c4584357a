from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from database import Base, get_db
from main import app
from models.chat import Chat
from models.chat_turn import ChatTurn
from models.user import User
from routers import rate_limit
from services.completion import get_completion_client


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit.reset_rate_limiter()
    yield
    rate_limit.reset_rate_limiter()
    app.state.disable_rate_limits = previous


class FakeCompletionClient:
    """Records every completion request and answers with a canned reply."""

    def __init__(self, reply: str = "Hi there"):
        self.reply = reply
        self.error: Optional[BaseException] = None
        self.calls: List[dict] = []

    async def complete(self, history, prompt, config=None):
        self.calls.append({"history": list(history), "prompt": prompt, "config": config})
        if self.error is not None:
            raise self.error
        return self.reply


@dataclass
class ChatApi:
    client: AsyncClient
    session_maker: Any
    completion: FakeCompletionClient
    _chat_counter: int = field(default=0)

    async def add_user(self, user_id: str, credits: int = 20, name: Optional[str] = None) -> None:
        async with self.session_maker() as session:
            session.add(User(id=user_id, email=f"{user_id}@example.com", name=name or user_id, credits=credits))
            await session.commit()

    async def add_chat(self, owner_id: str, turns: Optional[List[tuple]] = None, **turn_flags) -> str:
        self._chat_counter += 1
        chat_id = f"{self._chat_counter:024x}"
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        async with self.session_maker() as session:
            session.add(Chat(id=chat_id, user_id=owner_id, user_name=owner_id, name="New chat", version=1))
            for position, (role, content) in enumerate(turns or []):
                session.add(
                    ChatTurn(
                        chat_id=chat_id,
                        position=position,
                        role=role,
                        content=content,
                        timestamp=start + timedelta(seconds=position),
                        **turn_flags,
                    )
                )
            await session.commit()
        return chat_id

    async def turns(self, chat_id: str) -> List[tuple]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(ChatTurn.role, ChatTurn.content).where(ChatTurn.chat_id == chat_id).order_by(ChatTurn.position)
            )
            return [tuple(row) for row in result.all()]

    async def credits(self, user_id: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(select(User.credits).where(User.id == user_id))
            return int(result.scalar_one())

    async def chat_version(self, chat_id: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(select(Chat.version).where(Chat.id == chat_id))
            return int(result.scalar_one())


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "credit_chat.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def chat_api(session_maker):
    completion = FakeCompletionClient()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_completion_client] = lambda: completion
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield ChatApi(client=client, session_maker=session_maker, completion=completion)

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_completion_client, None)
