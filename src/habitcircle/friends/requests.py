"""Friend request state transitions.

    (none) --send--> pending --accept (target)--> accepted
                        |
                        +--reject (target) / cancel (requester)--> (deleted)

    accepted --remove (either side)--> (deleted)

There is no other transition. A deleted pair may start over with a new
request.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from habitcircle.auth.service import get_user_by_username, normalize_username
from habitcircle.database import store_errors
from habitcircle.db.models import FRIENDSHIP_ACCEPTED, FRIENDSHIP_PENDING, Friendship
from habitcircle.errors import (
    ALREADY_FRIENDS,
    ALREADY_PENDING,
    BLANK_USERNAME,
    NOT_FRIENDS,
    NOT_REQUEST_TARGET,
    REQUEST_NOT_FOUND,
    SELF_REQUEST,
    USER_NOT_FOUND,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from habitcircle.friends.resolver import find_friendship_between

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from habitcircle.auth.session import SessionContext

logger = structlog.get_logger()


def _conflict_for(friendship: Friendship) -> ConflictError:
    if friendship.status == FRIENDSHIP_ACCEPTED:
        return ConflictError("You are already friends with this user", code=ALREADY_FRIENDS)
    return ConflictError("A friend request is already pending with this user", code=ALREADY_PENDING)


async def send_request(db: AsyncSession, ctx: SessionContext, target_username: str) -> Friendship:
    """
    Create a pending request from the caller to ``target_username``.

    The checks run in a fixed order; each one assumes the previous passed.

    Raises:
        ValidationError: blank username, or the target is the caller.
        NotFoundError: no user has that username.
        ConflictError: a pending or accepted record already links the pair.
        StoreError: the database failed.
    """
    handle = normalize_username(target_username or "")
    if not handle:
        msg = "Enter a username"
        raise ValidationError(msg, code=BLANK_USERNAME)

    if handle == normalize_username(ctx.username):
        msg = "You cannot add yourself as a friend"
        raise ValidationError(msg, code=SELF_REQUEST)

    with store_errors("Could not send friend request", user_id=ctx.user_id):
        target = await get_user_by_username(db, handle)
        if target is None:
            msg = "User not found. Please check the username and try again."
            raise NotFoundError(msg, code=USER_NOT_FOUND)
        if target.id == ctx.user_id:
            msg = "You cannot add yourself as a friend"
            raise ValidationError(msg, code=SELF_REQUEST)

        existing = await find_friendship_between(db, ctx.user_id, target.id)
        if existing is not None:
            raise _conflict_for(existing)

        low, high = Friendship.canonical_pair(ctx.user_id, target.id)
        friendship = Friendship(
            requester_id=ctx.user_id,
            target_id=target.id,
            user_low_id=low,
            user_high_id=high,
            status=FRIENDSHIP_PENDING,
            created_at=datetime.now(timezone.utc),
        )
        db.add(friendship)
        try:
            await db.flush()
        except IntegrityError as e:
            # Lost a race against a concurrent request for the same pair.
            await db.rollback()
            logger.info("friend_request_race", requester_id=ctx.user_id, target_id=target.id)
            msg = "A friend request is already pending with this user"
            raise ConflictError(msg, code=ALREADY_PENDING) from e

    logger.info("friend_request_sent", request_id=friendship.id, requester_id=ctx.user_id, target_id=target.id)
    return friendship


async def respond_to_request(
    db: AsyncSession,
    ctx: SessionContext,
    request_id: int,
    accept: bool,
) -> Friendship | None:
    """
    Accept or decline a pending request.

    The target may accept (row updated in place) or reject (row deleted).
    The requester may only withdraw (``accept=False``, row deleted).

    Returns the accepted record, or None when the row was deleted.

    Raises:
        NotFoundError: no such request visible to the caller.
        AuthorizationError: the requester tried to accept their own request.
        ConflictError: the request was already accepted.
        StoreError: the database failed.
    """
    with store_errors("Could not update friend request", user_id=ctx.user_id, request_id=request_id):
        result = await db.execute(select(Friendship).where(Friendship.id == request_id))
        friendship = result.scalar_one_or_none()
        if friendship is None or ctx.user_id not in (friendship.requester_id, friendship.target_id):
            msg = "Friend request not found"
            raise NotFoundError(msg, code=REQUEST_NOT_FOUND)

        if friendship.status != FRIENDSHIP_PENDING:
            msg = "This request has already been accepted"
            raise ConflictError(msg, code=ALREADY_FRIENDS)

        is_target = friendship.target_id == ctx.user_id
        if accept and not is_target:
            msg = "Only the recipient can accept a friend request"
            raise AuthorizationError(msg, code=NOT_REQUEST_TARGET)

        if accept:
            friendship.status = FRIENDSHIP_ACCEPTED
            friendship.responded_at = datetime.now(timezone.utc)
            await db.flush()
            logger.info("friend_request_accepted", request_id=friendship.id, user_id=ctx.user_id)
            return friendship

        await db.delete(friendship)
        await db.flush()

    logger.info(
        "friend_request_rejected" if is_target else "friend_request_cancelled",
        request_id=request_id,
        user_id=ctx.user_id,
    )
    return None


async def remove_friend(db: AsyncSession, ctx: SessionContext, friend_id: int) -> None:
    """Delete the accepted record between the caller and ``friend_id``."""
    with store_errors("Could not remove friend", user_id=ctx.user_id, friend_id=friend_id):
        friendship = await find_friendship_between(db, ctx.user_id, friend_id)
        if friendship is None or friendship.status != FRIENDSHIP_ACCEPTED:
            msg = "You are not friends with this user"
            raise NotFoundError(msg, code=NOT_FRIENDS)

        await db.delete(friendship)
        await db.flush()
    logger.info("friend_removed", user_id=ctx.user_id, friend_id=friend_id)
