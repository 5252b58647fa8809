"""Auth dependencies — resolve the calling principal from a bearer JWT."""

from __future__ import annotations

from fastapi import Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError

from leave_tracker.auth.service import decode_access_token
from leave_tracker.common.constants import PRINCIPAL_MAX_LENGTH


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


async def get_current_principal(request: Request) -> str:
    """Validate the JWT and return the caller's principal (``sub``).

    Only identity is established here; whether the principal is a
    registered, active or admin user is decided by the services.
    """
    token = _extract_bearer(request)

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    principal = payload.get("sub")
    if not isinstance(principal, str) or not principal or len(principal) > PRINCIPAL_MAX_LENGTH:
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    request.state.principal = principal
    return principal
