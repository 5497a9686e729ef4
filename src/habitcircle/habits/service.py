"""Habit catalogue: creating habits and taking them on."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from habitcircle.database import store_errors
from habitcircle.db.models import ASSIGNMENT_ACTIVE, Habit, HabitAssignment
from habitcircle.errors import (
    ALREADY_ASSIGNED,
    BLANK_TITLE,
    HABIT_NOT_FOUND,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from habitcircle.friends.resolver import are_friends

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from habitcircle.auth.session import SessionContext

logger = structlog.get_logger()


async def create_habit(
    db: AsyncSession,
    ctx: SessionContext,
    title: str,
    description: str = "",
) -> HabitAssignment:
    """
    Create a habit and assign it to its creator.

    Both rows are written in the caller's transaction, so a failed
    assignment never leaves an orphaned habit behind.
    """
    title = (title or "").strip()
    if not title:
        msg = "Title is required"
        raise ValidationError(msg, code=BLANK_TITLE)

    now = datetime.now(timezone.utc)
    with store_errors("Could not create habit", user_id=ctx.user_id):
        habit = Habit(
            creator_id=ctx.user_id,
            title=title,
            description=(description or "").strip(),
            created_at=now,
        )
        db.add(habit)
        await db.flush()

        assignment = HabitAssignment(
            habit_id=habit.id,
            owner_id=ctx.user_id,
            status=ASSIGNMENT_ACTIVE,
            created_at=now,
        )
        assignment.habit = habit
        db.add(assignment)
        await db.flush()

    logger.info("habit_created", habit_id=habit.id, assignment_id=assignment.id, user_id=ctx.user_id)
    return assignment


async def adopt_habit(db: AsyncSession, ctx: SessionContext, habit_id: int) -> HabitAssignment:
    """
    Start tracking an existing habit created by the caller or by a friend.

    Raises:
        NotFoundError: unknown habit, or its creator is not a friend.
        ConflictError: the caller already tracks it.
        StoreError: the database failed.
    """
    with store_errors("Could not adopt habit", user_id=ctx.user_id, habit_id=habit_id):
        habit = (await db.execute(select(Habit).where(Habit.id == habit_id))).scalar_one_or_none()
        if habit is None or (
            habit.creator_id != ctx.user_id and not await are_friends(db, ctx.user_id, habit.creator_id)
        ):
            msg = "Habit not found"
            raise NotFoundError(msg, code=HABIT_NOT_FOUND)

        existing = await db.execute(
            select(HabitAssignment.id)
            .where(HabitAssignment.habit_id == habit_id)
            .where(HabitAssignment.owner_id == ctx.user_id)
        )
        if existing.scalar_one_or_none() is not None:
            msg = "You are already tracking this habit"
            raise ConflictError(msg, code=ALREADY_ASSIGNED)

        assignment = HabitAssignment(
            habit_id=habit.id,
            owner_id=ctx.user_id,
            status=ASSIGNMENT_ACTIVE,
            created_at=datetime.now(timezone.utc),
        )
        assignment.habit = habit
        db.add(assignment)
        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            msg = "You are already tracking this habit"
            raise ConflictError(msg, code=ALREADY_ASSIGNED) from e

    logger.info("habit_adopted", habit_id=habit.id, assignment_id=assignment.id, user_id=ctx.user_id)
    return assignment
