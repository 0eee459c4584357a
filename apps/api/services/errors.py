"""Error taxonomy for the chat API.

Every failure the message pipeline can surface is a ``ChatError`` subclass
carrying its HTTP status, a human readable message and any extra context
fields (``retryAfter``, ``validationErrors`` ...) that belong in the JSON
envelope. ``main.py`` renders them through ``services.responses``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ChatError(Exception):
    status_code: int = 500
    code: str = "Unknown"
    default_message: str = "Failed to process message"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.detail = detail
        self.context: Dict[str, Any] = {key: value for key, value in context.items() if value is not None}
        super().__init__(self.message)

    @property
    def retry_after(self) -> Optional[int]:
        return self.context.get("retryAfter")


class ValidationError(ChatError):
    status_code = 400
    code = "ValidationError"
    default_message = "Invalid message input"

    def __init__(self, errors: Dict[str, Optional[str]], message: Optional[str] = None):
        super().__init__(message, validationErrors=errors)
        self.errors = errors


class AuthError(ChatError):
    status_code = 401
    code = "AuthError"
    default_message = "Token verification failed"

    def __init__(self, message: Optional[str] = None, *, expired: bool = False, **context: Any):
        super().__init__(message, expired=expired, **context)
        if expired:
            self.status_code = 403


class NotFoundError(ChatError):
    status_code = 404
    code = "NotFound"
    default_message = "Chat not found"


class RateLimitedError(ChatError):
    status_code = 429
    code = "RateLimited"
    default_message = "Too many requests. Please wait a moment."

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(message, retryAfter=int(retry_after))


class InsufficientCreditError(ChatError):
    status_code = 403
    code = "InsufficientCredit"
    default_message = "Insufficient credits"

    def __init__(self, required: int, available: int, message: Optional[str] = None):
        super().__init__(message, required=int(required), available=int(available))


class UpstreamUnavailableError(ChatError):
    status_code = 503
    code = "UpstreamUnavailable"
    default_message = "AI service is temporarily unavailable"

    def __init__(self, retry_after: int, message: Optional[str] = None, *, detail: Optional[str] = None):
        super().__init__(message, detail=detail, retryAfter=int(retry_after))


class UpstreamRateLimitedError(ChatError):
    status_code = 429
    code = "UpstreamRateLimited"
    default_message = "AI service quota exceeded. Please retry later."

    def __init__(self, retry_after: int, message: Optional[str] = None, *, detail: Optional[str] = None):
        super().__init__(message, detail=detail, retryAfter=int(retry_after))


class EmptyCompletionError(ChatError):
    status_code = 500
    code = "EmptyCompletion"
    default_message = "AI service returned an empty reply"


class PersistenceError(ChatError):
    status_code = 500
    code = "PersistenceError"
    default_message = "Reply was generated but could not be saved"


class UnknownError(ChatError):
    pass


class NotImplementedYetError(ChatError):
    status_code = 501
    code = "NotImplemented"
    default_message = "Image messages not implemented yet"
