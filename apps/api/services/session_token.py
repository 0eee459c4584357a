"""Session token helpers for backend-authenticated user scope.

Tokens are issued by the identity service; this API only verifies them.
``create_session_token`` mirrors the issuer's claim layout and is used by
local tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from config import settings
from services.errors import AuthError


SESSION_TOKEN_TYPE = "chat_session"


def create_session_token(
    user_id: str,
    email: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> Dict[str, Any]:
    """Create a signed session token payload for API authentication."""
    now = datetime.now(timezone.utc)
    ttl_hours = int(expires_hours if expires_hours is not None else settings.JWT_EXPIRATION_HOURS or 24)
    expires_at = now + timedelta(hours=ttl_hours)
    claims: Dict[str, Any] = {
        "sub": user_id,
        "type": SESSION_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if email:
        claims["email"] = email

    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {
        "token": token,
        "expires_at": int(expires_at.timestamp()),
    }


def decode_session_token(token: str) -> Dict[str, Any]:
    """Decode and validate a signed session token, returning its claims with ``sub`` set."""
    if not token or len(token) < 10:
        raise AuthError("Invalid token provided")

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise AuthError("Token has expired", expired=True) from exc
    except JWTError as exc:
        raise AuthError("Invalid token signature") from exc

    if not isinstance(payload, dict):
        raise AuthError("Invalid token payload")

    token_type = payload.get("type")
    if token_type is not None and str(token_type).strip() != SESSION_TOKEN_TYPE:
        raise AuthError("Invalid session token type")

    # Older issuers put the principal id in "id" or "_id" instead of "sub".
    subject = str(payload.get("sub") or payload.get("id") or payload.get("_id") or "").strip()
    if not subject:
        raise AuthError("Token missing user identifier")

    payload["sub"] = subject
    return payload
