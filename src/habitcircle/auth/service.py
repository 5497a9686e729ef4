"""
Authentication business logic.

Handles sign-up, sign-in, session lifecycle and account lockout.
"""

from __future__ import annotations

import hashlib
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update

from habitcircle.auth.jwt import create_access_token, create_refresh_token
from habitcircle.auth.password import (
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from habitcircle.config import get_settings
from habitcircle.db.models import AuthSession, User
from habitcircle.errors import ConflictError, ValidationError

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

_USERNAME_RE = re.compile(r"^[a-z0-9][a-z0-9._+-]{0,63}$")
_HANDLE_STRIP_RE = re.compile(r"[^a-z0-9._+-]+")
_USERNAME_MAX = 64
_DERIVED_ATTEMPTS = 20


class InvalidCredentialsError(ValueError):
    """Email or password did not match."""


class AccountLockedError(PermissionError):
    """Too many failed sign-in attempts."""


@dataclass
class IssuedSession:
    """A freshly opened session and the tokens that belong to it."""

    session: AuthSession
    access_token: str
    refresh_token: str


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower().strip()))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    """Fetch a user by username (case-insensitive)."""
    result = await db.execute(select(User).where(User.username == normalize_username(username)))
    return result.scalar_one_or_none()


def normalize_username(username: str) -> str:
    return username.strip().lower()


def derive_username(email: str) -> str:
    """
    Default handle for a new account: the local part of the email address,
    reduced to the characters a username may hold.
    """
    local = normalize_username(email.split("@", 1)[0])
    handle = _HANDLE_STRIP_RE.sub("", local).lstrip("._+-")[:_USERNAME_MAX]
    return handle or "user"


async def _available_username(db: AsyncSession, base: str) -> str:
    """``base``, or ``base-2``, ``base-3``... if taken; a random suffix as a last resort."""
    if await get_user_by_username(db, base) is None:
        return base
    stem = base[: _USERNAME_MAX - 4]
    for n in range(2, _DERIVED_ATTEMPTS + 2):
        candidate = f"{stem}-{n}"
        if await get_user_by_username(db, candidate) is None:
            return candidate
    return f"{base[: _USERNAME_MAX - 9]}-{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# Sign-up
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    username: str | None = None,
    full_name: str | None = None,
) -> User:
    """
    Register a new user with email + password.

    Raises:
        PasswordStrengthError: If the password is too weak.
        ValidationError: If the username is malformed.
        ConflictError: If the email, or an explicitly chosen username, is already taken.
    """
    validate_password_strength(password)

    if username:
        handle = normalize_username(username)
        if not _USERNAME_RE.match(handle):
            msg = "Username may only contain letters, digits, '.', '_', '+' and '-'"
            raise ValidationError(msg, code="invalid_username")

    if await get_user_by_email(db, email) is not None:
        msg = "Email already registered"
        raise ConflictError(msg, code="email_taken")

    if not username:
        handle = await _available_username(db, derive_username(email))
    elif await get_user_by_username(db, handle) is not None:
        msg = "Username already taken"
        raise ConflictError(msg, code="username_taken")

    now = datetime.now(timezone.utc)
    user = User(
        email=email.lower().strip(),
        password_hash=hash_password(password),
        username=handle,
        full_name=full_name.strip() if full_name and full_name.strip() else None,
        created_at=now,
        last_login=now,
        login_count=1,
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, username=handle)
    return user


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


async def authenticate_user(
    db: AsyncSession,
    redis: Redis,
    email: str,
    password: str,
) -> User:
    """
    Authenticate a user with email + password.

    Raises:
        InvalidCredentialsError: If credentials are invalid.
        AccountLockedError: If the account is temporarily locked.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        msg = "Invalid email or password"
        raise InvalidCredentialsError(msg)

    if await check_account_lockout(redis, user.id):
        msg = "Account temporarily locked. Try again later."
        raise AccountLockedError(msg)

    if not verify_password(password, user.password_hash):
        attempts = await increment_failed_login(redis, user.id)
        logger.info("login_failed", user_id=user.id, attempts=attempts)
        msg = "Invalid email or password"
        raise InvalidCredentialsError(msg)

    await clear_failed_login(redis, user.id)

    user.last_login = datetime.now(timezone.utc)
    user.login_count = (user.login_count or 0) + 1

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        logger.info("password_rehashed", user_id=user.id)

    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Account lockout
# ---------------------------------------------------------------------------


async def check_account_lockout(redis: Redis, user_id: int) -> bool:
    """Check if the account is locked due to too many failed login attempts."""
    settings = get_settings()
    count_str = await redis.get(f"login_attempts:{user_id}")
    if count_str is None:
        return False
    return int(count_str) >= settings.account_lockout_threshold


async def increment_failed_login(redis: Redis, user_id: int) -> int:
    """Increment failed login counter. Returns the new count."""
    settings = get_settings()
    key = f"login_attempts:{user_id}"
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, settings.account_lockout_duration_minutes * 60)
    return int(count)


async def clear_failed_login(redis: Redis, user_id: int) -> None:
    """Clear the failed login counter after a successful login."""
    await redis.delete(f"login_attempts:{user_id}")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


async def open_session(
    db: AsyncSession,
    user_id: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> IssuedSession:
    """Create a session row and issue its access + refresh tokens."""
    settings = get_settings()
    session_id = str(uuid.uuid4())
    access_token = create_access_token(user_id, session_id)
    refresh_token = create_refresh_token(user_id, session_id=session_id)

    now = datetime.now(timezone.utc)
    session = AuthSession(
        id=session_id,
        user_id=user_id,
        refresh_token_hash=_hash_token(refresh_token),
        issued_at=now,
        expires_at=now + timedelta(days=settings.jwt_refresh_token_expire_days),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(session)
    await db.flush()
    logger.info("session_opened", user_id=user_id, session_id=session_id)
    return IssuedSession(session=session, access_token=access_token, refresh_token=refresh_token)


async def get_session_by_id(db: AsyncSession, session_id: str) -> AuthSession | None:
    """Look up a session by id, whatever its state."""
    result = await db.execute(select(AuthSession).where(AuthSession.id == session_id))
    return result.scalar_one_or_none()


async def get_active_session(db: AsyncSession, session_id: str, user_id: int) -> AuthSession | None:
    """Return the session only if it belongs to the user, is not revoked and has not expired."""
    result = await db.execute(
        select(AuthSession)
        .where(AuthSession.id == session_id)
        .where(AuthSession.user_id == user_id)
        .where(AuthSession.is_revoked == False)  # noqa: E712
        .where(AuthSession.expires_at > datetime.now(timezone.utc))
    )
    return result.scalar_one_or_none()


def refresh_token_matches(session: AuthSession, refresh_token: str) -> bool:
    return session.refresh_token_hash == _hash_token(refresh_token)


async def rotate_session(
    db: AsyncSession,
    old_session: AuthSession,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> IssuedSession:
    """Revoke the old session and open its replacement."""
    issued = await open_session(db, old_session.user_id, ip_address=ip_address, user_agent=user_agent)
    old_session.is_revoked = True
    old_session.revoked_at = datetime.now(timezone.utc)
    old_session.replaced_by = issued.session.id
    await db.flush()
    return issued


async def revoke_session(db: AsyncSession, session_id: str) -> bool:
    """Revoke a specific session. Returns True if it was active."""
    session = await get_session_by_id(db, session_id)
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("session_revoked", user_id=session.user_id, session_id=session_id)
    return True


async def revoke_all_sessions(db: AsyncSession, user_id: int) -> int:
    """Revoke every active session of a user. Returns count revoked."""
    result = await db.execute(
        update(AuthSession)
        .where(AuthSession.user_id == user_id)
        .where(AuthSession.is_revoked == False)  # noqa: E712
        .values(is_revoked=True, revoked_at=datetime.now(timezone.utc))
    )
    await db.flush()
    return result.rowcount  # type: ignore[return-value]
