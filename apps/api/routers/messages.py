"""Message exchange router."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.completion import CompletionClient, get_completion_client
from services.errors import ChatError, UnknownError
from services.messages import send_image_message, send_text_message

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/text")
async def text_message(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    auth: AuthContext = Depends(get_auth_context),
    _rate_limit: None = Depends(rate_limit("messages_text")),
    db: AsyncSession = Depends(get_db),
    completion_client: CompletionClient = Depends(get_completion_client),
):
    logger.info("Processing text message for user=%s", auth.user_id)
    try:
        return await send_text_message(
            user_id=auth.user_id,
            payload=payload,
            db=db,
            completion_client=completion_client,
        )
    except ChatError:
        raise
    except Exception as exc:
        logger.exception(
            "Message route error user=%s chat=%s",
            auth.user_id,
            (payload or {}).get("chatId") if isinstance(payload, dict) else None,
        )
        raise UnknownError(detail=str(exc)) from exc


@router.post("/image")
async def image_message(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    auth: AuthContext = Depends(get_auth_context),
):
    return await send_image_message(user_id=auth.user_id, payload=payload)
