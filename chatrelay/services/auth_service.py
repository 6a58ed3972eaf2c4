"""
Session cookie handling.

Login itself belongs to the auth service in front of this API. It signs a
short JWT with the shared SESSION_SECRET and stores it in an HTTP-only cookie;
this module only decodes that cookie into a typed ``AuthSession`` which is
then passed explicitly to request handlers and bound to WebSocket
connections at upgrade time.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from chatrelay.core.config import Settings
from chatrelay.core.logging import get_logger

logger = get_logger(__name__)

COOKIE_MAX_AGE = 3600  # 1 hour


class AuthSession(BaseModel):
    """The authenticated user behind a request or socket."""

    user_id: int
    nickname: Optional[str] = None
    is_admin: bool = False


def issue_session_token(
    session: AuthSession,
    settings: Settings,
    expires_in: int = COOKIE_MAX_AGE,
) -> str:
    """
    Mint a session token for local development.

    Production cookies come from the auth service; this signs the same
    claims with SESSION_SECRET so a relay can be exercised without it
    (curl, a dev client, the test suite).
    """
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(session.user_id),
        "nickname": session.nickname,
        "admin": session.is_admin,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
    }
    return jwt.encode(claims, settings.SESSION_SECRET, algorithm=settings.SESSION_ALGORITHM)


def decode_session_token(token: str, settings: Settings) -> Optional[AuthSession]:
    """Return the session for a valid token, None for anything else."""
    try:
        claims = jwt.decode(token, settings.SESSION_SECRET, algorithms=[settings.SESSION_ALGORITHM])
    except JWTError as e:
        logger.info("Rejected session token: %s", e)
        return None

    try:
        return AuthSession(
            user_id=claims.get("sub"),
            nickname=claims.get("nickname"),
            is_admin=bool(claims.get("admin", False)),
        )
    except ValidationError:
        logger.warning("Session token carries an invalid subject")
        return None


def session_from_cookies(cookies: Mapping[str, str], settings: Settings) -> Optional[AuthSession]:
    token = cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        return None
    return decode_session_token(token, settings)


# ============================================================================
# FASTAPI DEPENDENCIES
# ============================================================================

async def get_optional_session(request: Request) -> Optional[AuthSession]:
    return session_from_cookies(request.cookies, request.app.state.chat.settings)


async def require_session(
    session: Optional[AuthSession] = Depends(get_optional_session),
) -> AuthSession:
    """Use as dependency for user-scoped endpoints."""
    if session is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Not authenticated")
    return session


async def require_admin(session: AuthSession = Depends(require_session)) -> AuthSession:
    if not session.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin privileges required")
    return session
