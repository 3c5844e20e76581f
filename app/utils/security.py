"""Access-token helpers.

Tokens are issued by the authentication service; this application only
decodes them. ``create_access_token`` exists for scripts and tests.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from app.config import get_settings


def create_access_token(
    user_id: str,
    role: str,
    email: str = "",
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT access token.

    Args:
        user_id: User's id
        role: User's role (e.g. ADMIN)
        email: User's email address
        expires_delta: Custom expiration time

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "email": email,
        "exp": now + expires_delta,
        "iat": now,
        "jti": str(uuid.uuid4()),
        "type": "access",
    }

    return jwt.encode(payload, settings.effective_jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode an access token.

    Returns:
        Token payload if the signature is valid, the token has not expired
        and it is an access token; None otherwise
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.effective_jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != "access" or not payload.get("sub"):
        return None
    return payload
