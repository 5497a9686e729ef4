"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

import jwt
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from habitcircle.auth import events
from habitcircle.auth.dependencies import get_session_context
from habitcircle.auth.jwt import verify_token
from habitcircle.auth.schemas import (
    CurrentUserResponse,
    LoginRequest,
    LogoutAllResponse,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from habitcircle.auth.service import (
    AccountLockedError,
    InvalidCredentialsError,
    IssuedSession,
    authenticate_user,
    get_session_by_id,
    get_user_by_id,
    open_session,
    refresh_token_matches,
    register_user,
    revoke_all_sessions,
    revoke_session,
    rotate_session,
)
from habitcircle.auth.session import SessionContext
from habitcircle.config import get_settings
from habitcircle.database import get_session
from habitcircle.db.models import User
from habitcircle.redis_client import get_redis

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _client_info(request: Request) -> tuple[str | None, str | None]:
    return (
        request.client.host if request.client else None,
        request.headers.get("user-agent"),
    )


def _token_response(user: User, issued: IssuedSession) -> TokenResponse:
    settings = get_settings()
    return TokenResponse(
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> TokenResponse:
    """Sign up and sign in in one step."""
    user = await register_user(
        db,
        email=body.email,
        password=body.password,
        username=body.username,
        full_name=body.full_name,
    )
    ip_address, user_agent = _client_info(request)
    issued = await open_session(db, user.id, ip_address=ip_address, user_agent=user_agent)
    await db.commit()

    await events.publish_session_event(redis, user.id, events.SIGNED_IN, issued.session.id)
    return _token_response(user, issued)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> TokenResponse:
    """Sign in with email + password."""
    try:
        user = await authenticate_user(db, redis, body.email, body.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except AccountLockedError as e:
        raise HTTPException(status_code=429, detail=str(e)) from e

    ip_address, user_agent = _client_info(request)
    issued = await open_session(db, user.id, ip_address=ip_address, user_agent=user_agent)
    await db.commit()

    await events.publish_session_event(redis, user.id, events.SIGNED_IN, issued.session.id)
    return _token_response(user, issued)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> TokenResponse:
    """Rotate the session: the old refresh token stops working."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    old_session = await get_session_by_id(db, payload["sid"])
    if old_session is None or not refresh_token_matches(old_session, body.refresh_token):
        raise HTTPException(status_code=401, detail="Refresh token not found")
    if old_session.is_revoked:
        # Reuse of a rotated or signed-out token: end every session of the user.
        await revoke_all_sessions(db, old_session.user_id)
        await db.commit()
        logger.warning("refresh_token_reuse", user_id=old_session.user_id, session_id=old_session.id)
        raise HTTPException(status_code=401, detail="Refresh token has been revoked")

    user = await get_user_by_id(db, old_session.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    ip_address, user_agent = _client_info(request)
    issued = await rotate_session(db, old_session, ip_address=ip_address, user_agent=user_agent)
    await db.commit()

    await events.publish_session_event(redis, user.id, events.REFRESHED, issued.session.id)
    return _token_response(user, issued)


@router.post("/logout")
async def logout(
    body: LogoutRequest,
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> dict[str, str]:
    """Sign out: ends the session, invalidating its access tokens too."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
    except jwt.InvalidTokenError:
        return {"status": "logged_out"}

    session = await get_session_by_id(db, payload["sid"])
    if session is not None and refresh_token_matches(session, body.refresh_token):
        if await revoke_session(db, session.id):
            await db.commit()
            await events.publish_session_event(redis, session.user_id, events.SIGNED_OUT, session.id)

    return {"status": "logged_out"}


@router.post("/logout-all", response_model=LogoutAllResponse)
async def logout_all(
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> LogoutAllResponse:
    """End every session of the current user."""
    count = await revoke_all_sessions(db, ctx.user_id)
    await db.commit()
    await events.publish_session_event(redis, ctx.user_id, events.SIGNED_OUT, ctx.session_id)
    return LogoutAllResponse(revoked_count=count)


@router.get("/session", response_model=CurrentUserResponse)
async def current_session(
    ctx: SessionContext = Depends(get_session_context),
) -> CurrentUserResponse:
    """Return the user behind the current session."""
    return CurrentUserResponse(
        id=ctx.user_id,
        email=ctx.email,
        username=ctx.username,
        session_id=ctx.session_id,
    )


@router.get("/session/events")
async def session_events(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> StreamingResponse:
    """Server-sent events stream of the current user's session changes."""

    async def _stream() -> AsyncIterator[str]:
        async for event in events.session_event_stream(redis, ctx.user_id):
            if await request.is_disconnected():
                break
            yield f"event: {event.get('event', 'message')}\ndata: {json.dumps(event)}\n\n"

    return StreamingResponse(_stream(), media_type="text/event-stream")
