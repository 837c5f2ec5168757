from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from padu_api.auth.utils import verify_token

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> UUID:
    """Caller's user id from the ``user_id`` (or ``sub``) claim of an access token."""
    if not credentials:
        raise _unauthorized("Not authenticated")

    claims = verify_token(credentials.credentials)
    if not claims or claims.get("type") != "access":
        raise _unauthorized("Invalid token")

    subject = claims.get("user_id") or claims.get("sub")
    try:
        return UUID(subject)
    except (TypeError, ValueError) as e:
        raise _unauthorized("Invalid token payload") from e
