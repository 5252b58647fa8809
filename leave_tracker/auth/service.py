"""Auth service — access-token decoding.

Tokens are issued by the identity provider that fronts this service and
signed with the shared ``JWT_SECRET``; the ``sub`` claim is the caller's
opaque principal. This service never issues tokens itself.
"""

from __future__ import annotations

from typing import Any

from jose import jwt

from leave_tracker.config import settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a token; raises ``jose.JWTError`` subclasses."""
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
    )
