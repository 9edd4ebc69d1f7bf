"""
Identity provider boundary.

WHAT: Bearer-token encoding/decoding and FastAPI auth dependencies
WHY: Every request and every realtime connection must identify a principal and role
HOW: PyJWT HS256 tokens carrying sub, role and exp
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from ..utils.exceptions import AuthenticationException, ForbiddenException
from ..utils.logger import get_logger

logger = get_logger(__name__)

PrincipalRole = Literal["buyer", "seller"]
VALID_ROLES = ("buyer", "seller")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, opaque apart from id and account role."""
    id: str
    role: PrincipalRole
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


def create_access_token(
    principal_id: str,
    role: PrincipalRole,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Issue a bearer token.

    Lives on the identity provider side of the boundary; the marketplace
    only verifies tokens, but tests and local tooling need to mint them.
    """
    if role not in VALID_ROLES:
        raise ValueError(f"role must be one of {VALID_ROLES}, got {role!r}")
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": principal_id, "role": role, "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: Optional[str]) -> Principal:
    """
    Verify a bearer token and return its principal.

    Raises:
        AuthenticationException: token missing, malformed, expired or carrying an unknown role
    """
    if not token:
        raise AuthenticationException("Bearer token not provided")

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationException("Bearer token has expired", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise AuthenticationException("Invalid bearer token")

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or role not in VALID_ROLES:
        raise AuthenticationException("Bearer token is missing subject or role")

    expires_at = None
    if payload.get("exp") is not None:
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)

    return Principal(id=str(subject), role=role, expires_at=expires_at)


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Principal:
    """FastAPI dependency: resolve the caller or fail with 401."""
    token = credentials.credentials if credentials else None
    return decode_access_token(token)


async def require_buyer(principal: Principal = Depends(get_current_principal)) -> Principal:
    """FastAPI dependency: caller must hold a buyer account."""
    if principal.role != "buyer":
        raise ForbiddenException("This route is accessible to buyers only")
    return principal


async def require_seller(principal: Principal = Depends(get_current_principal)) -> Principal:
    """FastAPI dependency: caller must hold a seller account."""
    if principal.role != "seller":
        raise ForbiddenException("This route is accessible to sellers only")
    return principal
