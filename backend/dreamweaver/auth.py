"""
DreamWeaver Backend — Bearer Token Authentication
==================================================

What:  Resolves the caller's identity from an `Authorization: Bearer <jwt>`
       header.
Why:   Every sleep-session and bedroom operation is scoped to a user ID; the
       ID comes from the token's `sub` claim and nowhere else.
How:   PyJWT verifies the HS256 signature against JWT_SECRET and enforces
       `exp`. Accounts live with the identity provider; this service never
       stores users or passwords.

Claims:
    sub       (required) opaque user ID (at most 64 chars), used as user_id / owner_id
    username  (optional) display name, logged only
    role      (optional) defaults to "user"
    exp       (required) expiry; expired tokens are rejected
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dreamweaver.config import settings
from dreamweaver.database import USER_ID_LENGTH
from dreamweaver.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# auto_error=False: a missing header reaches get_current_identity, which
# raises AuthenticationError so the response has the standard error shape
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller."""
    user_id: str
    username: Optional[str] = None
    role: str = "user"


def create_access_token(
    user_id: str,
    username: Optional[str] = None,
    role: str = "user",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Sign a token the way the identity provider does.

    Used by tests and local tooling; production tokens are minted elsewhere
    with the same secret.
    """
    now = datetime.now(timezone.utc)
    expires_at = now + (expires_delta or timedelta(hours=settings.jwt_expiry_hours))
    claims: Dict[str, Any] = {"sub": user_id, "role": role, "iat": now, "exp": expires_at}
    if username:
        claims["username"] = username
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Identity:
    """
    Verify a token and return the identity it carries.

    Raises:
        AuthenticationError: bad signature, expired, malformed, or no `sub`
    """
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(message="Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Rejected bearer token: %s", type(e).__name__)
        raise AuthenticationError(message="Invalid authentication token")

    user_id = claims.get("sub")
    if not isinstance(user_id, str) or not user_id.strip():
        raise AuthenticationError(message="Invalid authentication token")
    if len(user_id) > USER_ID_LENGTH:
        logger.warning("Rejected bearer token: subject longer than %d", USER_ID_LENGTH)
        raise AuthenticationError(message="Invalid authentication token")

    return Identity(
        user_id=user_id,
        username=claims.get("username"),
        role=claims.get("role") or "user",
    )


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """FastAPI dependency: the authenticated caller, or 401."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(message="Missing bearer token")
    return decode_access_token(credentials.credentials)
