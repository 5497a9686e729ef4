"""Marking an assignment done (or not done) for the current day.

At most one completion exists per assignment per local day: completing
twice is a no-op, and undoing removes that day's completion.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from habitcircle.database import store_errors
from habitcircle.db.models import CompletionEvent, HabitAssignment
from habitcircle.errors import (
    ASSIGNMENT_NOT_FOUND,
    NOT_ASSIGNMENT_OWNER,
    AuthorizationError,
    NotFoundError,
)
from habitcircle.habits.day_utils import local_today

if TYPE_CHECKING:
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

    from habitcircle.auth.session import SessionContext

logger = structlog.get_logger()


async def _owned_assignment(db: AsyncSession, ctx: SessionContext, assignment_id: int) -> HabitAssignment:
    assignment = (
        await db.execute(select(HabitAssignment).where(HabitAssignment.id == assignment_id))
    ).scalar_one_or_none()
    if assignment is None:
        msg = "Habit assignment not found"
        raise NotFoundError(msg, code=ASSIGNMENT_NOT_FOUND)
    if assignment.owner_id != ctx.user_id:
        msg = "Only the owner can change this habit's completion"
        raise AuthorizationError(msg, code=NOT_ASSIGNMENT_OWNER)
    return assignment


async def _completion_on(db: AsyncSession, assignment_id: int, day: date) -> CompletionEvent | None:
    result = await db.execute(
        select(CompletionEvent)
        .where(CompletionEvent.assignment_id == assignment_id)
        .where(CompletionEvent.completed_on == day)
    )
    return result.scalar_one_or_none()


async def record_completion(
    db: AsyncSession,
    ctx: SessionContext,
    assignment_id: int,
    tz: tzinfo,
    now: datetime | None = None,
) -> CompletionEvent:
    """Mark the assignment done for today. Returns the (possibly existing) completion."""
    now = datetime.now(timezone.utc) if now is None else now.astimezone(timezone.utc)
    today = local_today(tz, now)

    with store_errors("Could not record completion", user_id=ctx.user_id, assignment_id=assignment_id):
        await _owned_assignment(db, ctx, assignment_id)
        existing = await _completion_on(db, assignment_id, today)
        if existing is not None:
            return existing

        event = CompletionEvent(assignment_id=assignment_id, completed_at=now, completed_on=today)
        db.add(event)
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent completion for the same day won.
            await db.rollback()
            existing = await _completion_on(db, assignment_id, today)
            if existing is None:
                raise
            return existing

    logger.info("habit_completed", assignment_id=assignment_id, user_id=ctx.user_id, day=today.isoformat())
    return event


async def undo_completion(
    db: AsyncSession,
    ctx: SessionContext,
    assignment_id: int,
    tz: tzinfo,
    now: datetime | None = None,
) -> bool:
    """Remove today's completion. Returns False if there was none."""
    today = local_today(tz, now)

    with store_errors("Could not undo completion", user_id=ctx.user_id, assignment_id=assignment_id):
        await _owned_assignment(db, ctx, assignment_id)
        existing = await _completion_on(db, assignment_id, today)
        if existing is None:
            return False

        await db.delete(existing)
        await db.flush()

    logger.info("habit_uncompleted", assignment_id=assignment_id, user_id=ctx.user_id, day=today.isoformat())
    return True
