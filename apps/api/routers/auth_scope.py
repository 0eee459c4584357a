"""Authentication dependencies for API user scoping."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.errors import AuthError
from services.session_token import decode_session_token


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated user from Bearer session token."""
    if not credentials:
        raise AuthError("Authorization header is required", requiredHeader="Authorization: Bearer <token>")
    if credentials.scheme.lower() != "bearer":
        raise AuthError("Invalid authorization format", expectedFormat="Authorization: Bearer <token>")

    payload = decode_session_token(credentials.credentials)
    return AuthContext(
        user_id=str(payload["sub"]),
        email=str(payload.get("email", "")) or None,
    )
