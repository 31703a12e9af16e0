"""
Authentication endpoints.

- Email/password registration and login
- JWT session management (refresh, logout)

Sessions are delivered both as cookies (browser) and as ``access_token`` in
the response body (bearer clients).
"""

from __future__ import annotations

import uuid
from typing import Optional

import jwt
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamboard.core.auth import (
    authorization_header,
    create_jwt,
    decode_jwt,
    extract_token,
    generate_csrf_token,
    is_jwt_revoked,
    revoke_jwt,
    token_ttl_seconds,
    verify_password,
)
from teamboard.core.config import get_settings
from teamboard.core.database import get_session
from teamboard.core.middleware import CSRF_COOKIE, SESSION_COOKIE
from teamboard.core.realtime import commit_and_publish
from teamboard.models.user import Profile, User
from teamboard.services.profiles import create_account, get_profile_by_user_id

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()

# Cookie config
COOKIE_KWARGS = {
    "httponly": True,
    "secure": not settings.debug,  # allow non-HTTPS in dev
    "samesite": "lax",
    "path": "/",
    "max_age": settings.jwt_expire_minutes * 60,
}


def _set_session_cookies(response: Response, token: str, csrf: str) -> None:
    """Set the session JWT and CSRF cookies on a response."""
    response.set_cookie(key=SESSION_COOKIE, value=token, **COOKIE_KWARGS)
    response.set_cookie(
        key=CSRF_COOKIE,
        value=csrf,
        httponly=False,  # JS must read this
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=settings.jwt_expire_minutes * 60,
    )


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    user_id: str
    email: str
    role: str
    is_approved: bool
    access_token: str
    token_type: str = "bearer"
    message: str


def _issue_session(response: Response, user: User, profile: Optional[Profile], message: str) -> AuthResponse:
    token, _jti = create_jwt(user_id=user.id)
    _set_session_cookies(response, token, generate_csrf_token())
    return AuthResponse(
        user_id=str(user.id),
        email=user.email,
        role=profile.role if profile else "developer",
        is_approved=bool(profile and profile.is_approved),
        access_token=token,
        message=message,
    )


# ---------------------------------------------------------------------------
# Email/Password
# ---------------------------------------------------------------------------

@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Register a new account. The profile starts unapproved, as a developer."""
    user, profile = await create_account(
        session,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    await commit_and_publish(session)

    log.info("user.registered", user_id=str(user.id))
    return _issue_session(response, user, profile, "Registration successful, awaiting approval")


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a JWT session."""
    result = await session.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not user.password_hash:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not verify_password(body.password, user.password_hash):
        log.warning("auth.login_failure", user_id=str(user.id), reason="bad_password")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    profile = await get_profile_by_user_id(session, user.id)

    log.info("auth.login_success", user_id=str(user.id))
    return _issue_session(response, user, profile, "Login successful")


# ---------------------------------------------------------------------------
# Session Management
# ---------------------------------------------------------------------------

@router.post("/refresh", response_model=AuthResponse)
async def refresh_session(
    request: Request,
    response: Response,
    authorization: Optional[str] = Depends(authorization_header),
    session: AsyncSession = Depends(get_session),
):
    """Issue a new token for the current session and revoke the old one."""
    token = extract_token(request, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="No active session")

    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise HTTPException(status_code=401, detail="Session has been revoked")

    user = await session.get(User, uuid.UUID(payload["sub"]))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    profile = await get_profile_by_user_id(session, user.id)

    if jti:
        await revoke_jwt(jti, token_ttl_seconds(payload))

    return _issue_session(response, user, profile, "Session refreshed")


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    authorization: Optional[str] = Depends(authorization_header),
):
    """Invalidate the current session."""
    token = extract_token(request, authorization)
    if token:
        try:
            payload = decode_jwt(token)
        except jwt.PyJWTError:
            payload = {}  # already invalid, just clear cookies
        jti = payload.get("jti")
        if jti:
            await revoke_jwt(jti, token_ttl_seconds(payload))

    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return {"message": "Logged out"}
