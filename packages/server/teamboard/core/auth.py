"""
Authentication and authorization for Teamboard.

Supports:
- Email/password accounts (bcrypt)
- JWT sessions via cookie or ``Authorization: Bearer`` header, with a Redis
  revocation list
- A request-scoped ``CurrentUser`` whose role and approval are read from the
  Profile row on every request (the token only carries the user id)
- Approval and admin gates as FastAPI dependencies
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.config import get_settings
from teamboard.core.database import bind_rls_user, get_session
from teamboard.core.middleware import SESSION_COOKIE
from teamboard.core.redis import get_redis
from teamboard.models.user import Profile, User
from teamboard_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti).

    Role and approval are deliberately absent from the claims.
    """
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def token_ttl_seconds(payload: dict) -> int:
    """Seconds until the token expires (at least 1), used as the revocation TTL."""
    exp = payload.get("exp")
    if exp is None:
        return settings.jwt_expire_minutes * 60
    remaining = int(exp - datetime.now(timezone.utc).timestamp())
    return max(remaining, 1)


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", ttl_seconds, "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Request-scoped identity
# ---------------------------------------------------------------------------

class CurrentUser:
    """The authenticated identity for one request plus its profile, if any.

    A user whose profile was deleted (or never created) is treated as an
    unapproved developer.
    """

    def __init__(self, user: User, profile: Optional[Profile], jti: Optional[str] = None):
        self.user = user
        self.profile = profile
        self.user_id = user.id
        self.email = user.email
        self.jti = jti

    @property
    def role(self) -> str:
        return self.profile.role if self.profile else Role.DEVELOPER.value

    @property
    def is_approved(self) -> bool:
        return bool(self.profile and self.profile.is_approved)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value and self.is_approved


def extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    """Bearer header wins over the session cookie."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


async def load_current_user(
    session: AsyncSession, user_id: uuid.UUID, jti: Optional[str] = None
) -> CurrentUser:
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    result = await session.execute(select(Profile).where(Profile.user_id == user_id))
    profile = result.scalar_one_or_none()
    return CurrentUser(user=user, profile=profile, jti=jti)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
    session: AsyncSession = Depends(get_session),
) -> CurrentUser:
    """Main authentication dependency: bearer token first, then the session cookie."""
    token = extract_token(request, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise HTTPException(status_code=401, detail="Session has been revoked")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    current = await load_current_user(session, user_id, jti)
    await bind_rls_user(session, user_id)
    request.state.auth = current
    structlog.contextvars.bind_contextvars(user_id=str(user_id))
    return current


# ---------------------------------------------------------------------------
# Authorization dependencies
# ---------------------------------------------------------------------------

async def require_approved(
    auth: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Any approved profile. Unapproved accounts see no project or task data."""
    if not auth.is_approved:
        raise HTTPException(status_code=403, detail="Account pending approval")
    return auth


async def require_admin(
    auth: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Approved profile with the admin role."""
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return auth
