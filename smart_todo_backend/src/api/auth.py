from __future__ import annotations

import logging
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .models import Identity
from .settings import get_settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_ALGORITHMS = ["HS256"]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# PUBLIC_INTERFACE
def decode_session_token(token: str) -> Identity:
    """
    Verify a session token issued by the auth service and return the caller.

    The token is an HS256 JWT whose ``sub`` claim is the user id. The audience
    is checked only when AUTH_JWT_AUDIENCE is configured.

    Raises:
        HTTPException(401) with detail 'JWT expired' or 'Invalid authentication credentials'.
    """
    settings = get_settings()
    options = {"require": ["sub", "exp"], "verify_aud": settings.auth_jwt_audience is not None}
    try:
        claims = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=_ALGORITHMS,
            audience=settings.auth_jwt_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("JWT expired")
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected session token: %s", exc)
        raise _unauthorized("Invalid authentication credentials")

    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        raise _unauthorized("Invalid authentication credentials")
    return Identity(user_id=user_id, email=claims.get("email"))


# PUBLIC_INTERFACE
async def get_current_identity(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """
    FastAPI dependency resolving the caller from the ``Authorization: Bearer`` header.

    Raises:
        HTTPException(401) if the token is missing, expired or invalid.
    """
    if creds is None or not creds.credentials:
        raise _unauthorized("Not authenticated")
    return decode_session_token(creds.credentials)
