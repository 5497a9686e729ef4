"""Profile management business logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from habitcircle.auth.service import get_user_by_id, get_user_by_username
from habitcircle.database import store_errors
from habitcircle.errors import USER_NOT_FOUND, NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from habitcircle.auth.session import SessionContext
    from habitcircle.db.models import User

logger = structlog.get_logger()


async def get_profile(db: AsyncSession, ctx: SessionContext) -> User:
    """The caller's own user row."""
    with store_errors("Could not load profile", user_id=ctx.user_id):
        user = await get_user_by_id(db, ctx.user_id)
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg, code=USER_NOT_FOUND)
    return user


async def update_profile(
    db: AsyncSession,
    ctx: SessionContext,
    full_name: str | None = None,
    avatar_url: str | None = None,
) -> User:
    """
    Update the caller's editable profile fields.

    The username is immutable. An empty ``full_name`` clears it.
    """
    user = await get_profile(db, ctx)

    if full_name is not None:
        user.full_name = full_name.strip() or None
    if avatar_url is not None:
        user.avatar_url = avatar_url.strip() or None

    with store_errors("Could not update profile", user_id=ctx.user_id):
        await db.flush()
    logger.info("profile_updated", user_id=user.id)
    return user


async def get_public_profile(db: AsyncSession, username: str) -> User:
    """Look a user up by username for friend search."""
    with store_errors("Could not look up user"):
        user = await get_user_by_username(db, username)
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg, code=USER_NOT_FOUND)
    return user
