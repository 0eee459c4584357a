"""Success and error envelopes returned by the chat API."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from config import is_development
from services.errors import ChatError


def to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def serialize_turn(turn: Any) -> Dict[str, Any]:
    return {
        "role": turn.role,
        "content": turn.content,
        "timestamp": to_epoch_ms(turn.timestamp),
        "isImage": bool(turn.is_image),
    }


def compose_success(reply: Any, chat_id: str, credits_remaining: Optional[int]) -> Dict[str, Any]:
    return {
        "success": True,
        "reply": serialize_turn(reply),
        "chatId": chat_id,
        "creditsRemaining": credits_remaining,
    }


def compose_error(error: ChatError, *, debug: Optional[bool] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "success": False,
        "message": error.message,
        "code": error.code,
    }
    payload.update(error.context)
    show_detail = is_development() if debug is None else debug
    if show_detail:
        cause = error.__cause__
        payload["error"] = error.detail or (str(cause) if cause else error.message)
    return payload


def error_response(error: ChatError) -> JSONResponse:
    headers = None
    retry_after = error.retry_after
    if retry_after is not None:
        headers = {"Retry-After": str(max(int(math.ceil(retry_after)), 0))}
    return JSONResponse(status_code=error.status_code, content=compose_error(error), headers=headers)
