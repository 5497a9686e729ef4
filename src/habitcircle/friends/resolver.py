"""Friendship resolution: who a user's friends are, and who is asking.

An accepted row means friendship in both directions, so every read matches
the user on either endpoint and reports the *other* endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from habitcircle.db.models import FRIENDSHIP_ACCEPTED, FRIENDSHIP_PENDING, Friendship, User
from habitcircle.errors import StoreError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from habitcircle.auth.session import SessionContext

logger = structlog.get_logger()


@dataclass(frozen=True)
class FriendEntry:
    friend_id: int
    username: str
    full_name: str | None
    friendship_id: int


@dataclass(frozen=True)
class PendingRequestEntry:
    request_id: int
    requester_id: int
    username: str
    full_name: str | None
    created_at: datetime


def _involves(user_id: int):  # noqa: ANN202
    return or_(Friendship.requester_id == user_id, Friendship.target_id == user_id)


async def resolve_friends(db: AsyncSession, ctx: SessionContext) -> list[FriendEntry]:
    """All accepted friends of the caller. Order is unspecified."""
    requester = aliased(User)
    target = aliased(User)
    stmt = (
        select(Friendship, requester, target)
        .join(requester, Friendship.requester_id == requester.id)
        .join(target, Friendship.target_id == target.id)
        .where(Friendship.status == FRIENDSHIP_ACCEPTED)
        .where(_involves(ctx.user_id))
    )
    try:
        rows = (await db.execute(stmt)).all()
    except SQLAlchemyError as e:
        logger.error("resolve_friends_failed", user_id=ctx.user_id, error=str(e))
        msg = "Could not load friends"
        raise StoreError(msg) from e

    friends = []
    for friendship, req_user, tgt_user in rows:
        other = {req_user.id: req_user, tgt_user.id: tgt_user}[friendship.other_party(ctx.user_id)]
        friends.append(FriendEntry(
            friend_id=other.id,
            username=other.username,
            full_name=other.full_name,
            friendship_id=friendship.id,
        ))
    return friends


async def resolve_friend_ids(db: AsyncSession, user_id: int) -> set[int]:
    """Ids of all accepted friends of ``user_id``."""
    stmt = select(Friendship).where(Friendship.status == FRIENDSHIP_ACCEPTED).where(_involves(user_id))
    try:
        friendships = (await db.execute(stmt)).scalars().all()
    except SQLAlchemyError as e:
        logger.error("resolve_friend_ids_failed", user_id=user_id, error=str(e))
        msg = "Could not load friends"
        raise StoreError(msg) from e
    return {friendship.other_party(user_id) for friendship in friendships}


async def resolve_pending_incoming(db: AsyncSession, ctx: SessionContext) -> list[PendingRequestEntry]:
    """Pending requests addressed to the caller, oldest first."""
    stmt = (
        select(Friendship, User)
        .join(User, Friendship.requester_id == User.id)
        .where(Friendship.target_id == ctx.user_id)
        .where(Friendship.status == FRIENDSHIP_PENDING)
        .order_by(Friendship.created_at, Friendship.id)
    )
    try:
        rows = (await db.execute(stmt)).all()
    except SQLAlchemyError as e:
        logger.error("resolve_pending_failed", user_id=ctx.user_id, error=str(e))
        msg = "Could not load friend requests"
        raise StoreError(msg) from e

    return [
        PendingRequestEntry(
            request_id=friendship.id,
            requester_id=requester.id,
            username=requester.username,
            full_name=requester.full_name,
            created_at=friendship.created_at,
        )
        for friendship, requester in rows
    ]


async def find_friendship_between(db: AsyncSession, user_a: int, user_b: int) -> Friendship | None:
    """The single record for the unordered pair ``{user_a, user_b}``, if any."""
    low, high = Friendship.canonical_pair(user_a, user_b)
    result = await db.execute(
        select(Friendship)
        .where(Friendship.user_low_id == low)
        .where(Friendship.user_high_id == high)
    )
    return result.scalar_one_or_none()


async def are_friends(db: AsyncSession, user_a: int, user_b: int) -> bool:
    friendship = await find_friendship_between(db, user_a, user_b)
    return friendship is not None and friendship.status == FRIENDSHIP_ACCEPTED
