"""Which habit assignments a user may see, and whether each is done today.

The caller sees their own active assignments and those of accepted friends;
nothing else. "Done today" means a completion exists at or after local
midnight of the requested day. There is no upper bound, so asking about a
past day also counts completions made since then.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from habitcircle.db.models import ASSIGNMENT_ACTIVE, CompletionEvent, Habit, HabitAssignment, User
from habitcircle.errors import StoreError
from habitcircle.friends.resolver import resolve_friend_ids
from habitcircle.habits.day_utils import start_of_day

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from habitcircle.auth.session import SessionContext

logger = structlog.get_logger()


@dataclass(frozen=True)
class VisibleHabit:
    assignment_id: int
    habit_id: int
    title: str
    description: str
    created_at: datetime
    owner_id: int
    owner_username: str
    owner_full_name: str | None
    completed_today: bool


async def _completed_assignment_ids(
    db: AsyncSession,
    assignment_ids: Iterable[int],
    since: datetime,
) -> set[int]:
    ids = list(assignment_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(CompletionEvent.assignment_id)
        .where(CompletionEvent.assignment_id.in_(ids))
        .where(CompletionEvent.completed_at >= since)
    )
    return set(result.scalars().all())


async def _visible_for_owners(
    db: AsyncSession,
    owner_ids: Iterable[int],
    as_of_day: date,
    tz: tzinfo,
) -> list[VisibleHabit]:
    stmt = (
        select(HabitAssignment, Habit, User)
        .join(Habit, HabitAssignment.habit_id == Habit.id)
        .join(User, HabitAssignment.owner_id == User.id)
        .where(HabitAssignment.owner_id.in_(list(owner_ids)))
        .where(HabitAssignment.status == ASSIGNMENT_ACTIVE)
        .order_by(HabitAssignment.created_at, HabitAssignment.id)
    )
    rows = (await db.execute(stmt)).all()
    completed = await _completed_assignment_ids(
        db,
        (assignment.id for assignment, _, _ in rows),
        start_of_day(as_of_day, tz),
    )
    return [
        VisibleHabit(
            assignment_id=assignment.id,
            habit_id=habit.id,
            title=habit.title,
            description=habit.description,
            created_at=habit.created_at,
            owner_id=owner.id,
            owner_username=owner.username,
            owner_full_name=owner.full_name,
            completed_today=assignment.id in completed,
        )
        for assignment, habit, owner in rows
    ]


async def visible_own_habits(
    db: AsyncSession,
    ctx: SessionContext,
    as_of_day: date,
    tz: tzinfo,
) -> list[VisibleHabit]:
    """The caller's active assignments, annotated for ``as_of_day``."""
    try:
        return await _visible_for_owners(db, [ctx.user_id], as_of_day, tz)
    except SQLAlchemyError as e:
        logger.error("own_habits_fetch_failed", user_id=ctx.user_id, error=str(e))
        msg = "Could not load habits"
        raise StoreError(msg) from e


async def visible_friends_habits(
    db: AsyncSession,
    ctx: SessionContext,
    as_of_day: date,
    tz: tzinfo,
) -> list[VisibleHabit]:
    """Active assignments of the caller's accepted friends, annotated for ``as_of_day``."""
    friend_ids = await resolve_friend_ids(db, ctx.user_id)
    if not friend_ids:
        return []
    try:
        return await _visible_for_owners(db, friend_ids, as_of_day, tz)
    except SQLAlchemyError as e:
        logger.error("friends_habits_fetch_failed", user_id=ctx.user_id, error=str(e))
        msg = "Could not load friends' habits"
        raise StoreError(msg) from e
