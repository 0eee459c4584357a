"""Durable save of a chat with bounded retry."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from config import settings
from services.conversations import ChatThreadState, ChatVersionConflict, ConversationStore
from services.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

TRANSIENT_STORAGE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


async def _rebase(store: ConversationStore, state: ChatThreadState) -> ChatThreadState:
    """Reload the chat and replay this request's unsaved turns on top of it."""
    fresh = await store.load(state.id, state.owner_id)
    fresh.turns.extend(state.pending_turns)
    return fresh


async def persist_chat(
    store: ConversationStore,
    state: ChatThreadState,
    *,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ChatThreadState:
    """Save ``state`` with up to ``max_attempts`` tries and linear backoff.

    Transient storage failures are retried as-is. A version conflict means
    another request saved the same chat first: the chat is reloaded and the
    pending turns re-appended before the next try. Anything else, or running
    out of attempts, raises ``PersistenceError``.
    """
    attempts = max(int(max_attempts if max_attempts is not None else settings.PERSIST_MAX_ATTEMPTS), 1)
    backoff = backoff_seconds if backoff_seconds is not None else settings.PERSIST_BACKOFF_MS / 1000.0
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            return await store.save(state)
        except ChatVersionConflict as exc:
            last_error = exc
            logger.warning("Chat %s version conflict on save attempt %s/%s", state.id, attempt, attempts)
            try:
                state = await _rebase(store, state)
            except NotFoundError as reload_exc:
                raise PersistenceError(detail=f"chat {state.id} was deleted before the reply was saved") from reload_exc
            except SQLAlchemyError as reload_exc:
                raise PersistenceError(detail=str(reload_exc)) from reload_exc
        except TRANSIENT_STORAGE_ERRORS as exc:
            last_error = exc
            logger.warning("Chat %s save attempt %s/%s failed: %s", state.id, attempt, attempts, exc)
        except SQLAlchemyError as exc:
            logger.exception("Chat %s save failed with non-retryable error", state.id)
            raise PersistenceError(detail=str(exc)) from exc

        if attempt < attempts:
            await sleep(attempt * backoff)

    logger.error("Chat %s could not be saved after %s attempts", state.id, attempts)
    raise PersistenceError(detail=str(last_error)) from last_error
