"""Message exchange pipeline.

validate → credit gate → load chat → append user turn → project history →
completion → append assistant turn → persist (bounded retry) → charge
credits → compose response.

Every gate runs before anything is written, so a rejected request leaves the
chat and the balance untouched. The first write is the chat save; credits
are charged only after it succeeds, and a failed charge is logged rather
than undoing the saved turns.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.completion import CompletionClient, GenerationConfig
from services.conversations import ROLE_ASSISTANT, ROLE_USER, ConversationStore
from services.credits import charge_credits, check_credits, credit_cost
from services.errors import InsufficientCreditError, NotImplementedYetError
from services.history import project_history
from services.persistence import persist_chat
from services.responses import compose_success
from services.validation import validate_message_input

logger = logging.getLogger(__name__)


async def send_text_message(
    *,
    user_id: str,
    payload: Any,
    db: AsyncSession,
    completion_client: CompletionClient,
    generation_config: Optional[GenerationConfig] = None,
) -> Dict[str, Any]:
    message = validate_message_input(payload)

    cost = credit_cost(is_image=False)
    principal = await check_credits(user_id, db, cost=cost)
    balance_before = int(principal.credits or 0)

    store = ConversationStore(db)
    chat = await store.load(message.chat_id, user_id)
    chat.append_turn(ROLE_USER, message.prompt)

    history, prompt = project_history(chat.turns)
    logger.info("completion_requested user=%s chat=%s history_turns=%s", user_id, chat.id, len(history))
    reply_text = await completion_client.complete(
        history,
        prompt,
        generation_config or GenerationConfig.from_settings(),
    )

    reply = chat.append_turn(ROLE_ASSISTANT, reply_text)
    chat = await persist_chat(store, chat)
    logger.info("chat_persisted user=%s chat=%s version=%s", user_id, chat.id, chat.version)

    credits_remaining = balance_before
    try:
        charge = await charge_credits(
            user_id,
            db,
            cost=cost,
            reason="Text message",
            reference_type="chat",
            reference_id=chat.id,
        )
        credits_remaining = int(charge["balance_after"])
    except (InsufficientCreditError, SQLAlchemyError):
        # The turns are already saved; the reply is still delivered.
        logger.exception("Credit charge failed after save user=%s chat=%s cost=%s", user_id, chat.id, cost)

    return compose_success(reply, chat.id, credits_remaining)


async def send_image_message(*, user_id: str, payload: Any) -> Dict[str, Any]:
    validate_message_input(payload)
    logger.info("Image message requested user=%s", user_id)
    raise NotImplementedYetError()
