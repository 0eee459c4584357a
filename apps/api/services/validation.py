"""Structural validation of inbound message payloads."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic import ValidationError as PydanticValidationError

from services.errors import ValidationError


CHAT_ID_MIN_LENGTH = 24

_MISSING_MESSAGES = {
    "chatId": "Chat ID is required",
    "prompt": "Message content is required",
}
_INVALID_MESSAGES = {
    "chatId": "Invalid chat ID format",
    "prompt": "Message cannot be empty",
}
_TYPE_MESSAGES = {
    "chatId": "Invalid chat ID format",
    "prompt": "Prompt must be a string",
}


class MessageInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chat_id: StrictStr = Field(alias="chatId", min_length=CHAT_ID_MIN_LENGTH)
    prompt: StrictStr


def validate_message_input(payload: Any) -> MessageInput:
    """Validate ``{chatId, prompt}``; all failing fields are reported together."""
    if not isinstance(payload, dict):
        raise ValidationError(dict(_MISSING_MESSAGES), message="chatId and prompt are required fields")

    errors: Dict[str, Optional[str]] = {"chatId": None, "prompt": None}
    parsed: Optional[MessageInput] = None
    try:
        parsed = MessageInput.model_validate(payload)
    except PydanticValidationError as exc:
        for item in exc.errors():
            field = str(item["loc"][0]) if item.get("loc") else ""
            if field not in errors or errors[field]:
                continue
            kind = item.get("type")
            if kind == "missing":
                errors[field] = _MISSING_MESSAGES[field]
            elif kind == "string_type":
                errors[field] = _TYPE_MESSAGES[field]
            else:
                errors[field] = _INVALID_MESSAGES[field]

    prompt = payload.get("prompt")
    if isinstance(prompt, str) and not prompt.strip():
        errors["prompt"] = _INVALID_MESSAGES["prompt"]

    if any(errors.values()) or parsed is None:
        raise ValidationError(errors, message=_summary(errors))
    return parsed


def _summary(errors: Dict[str, Optional[str]]) -> str:
    failing = [name for name, message in errors.items() if message]
    if failing == ["prompt"]:
        return "Prompt must be a non-empty string"
    if failing == ["chatId"]:
        return "Invalid chatId format"
    return "chatId and prompt are required fields"
