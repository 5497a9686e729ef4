"""Habit endpoints: /api/v1/habits/*."""

from __future__ import annotations

from datetime import date, tzinfo

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from habitcircle.auth.dependencies import get_session_context
from habitcircle.auth.session import SessionContext
from habitcircle.config import get_settings
from habitcircle.database import get_session
from habitcircle.db.models import HabitAssignment
from habitcircle.errors import StoreError
from habitcircle.habits.completions import record_completion, undo_completion
from habitcircle.habits.day_utils import local_today, resolve_timezone
from habitcircle.habits.schemas import (
    AssignmentResponse,
    CompletionResponse,
    CreateHabitRequest,
    VisibleHabitResponse,
)
from habitcircle.habits.service import adopt_habit, create_habit
from habitcircle.habits.visibility import visible_friends_habits, visible_own_habits

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/habits", tags=["Habits"])


def _tz_param(tz: str | None = Query(None, max_length=64)) -> tzinfo:
    """The caller's time zone, falling back to the configured default."""
    return resolve_timezone(tz or get_settings().default_timezone)


def _assignment_response(assignment: HabitAssignment) -> AssignmentResponse:
    return AssignmentResponse(
        assignment_id=assignment.id,
        habit_id=assignment.habit.id,
        title=assignment.habit.title,
        description=assignment.habit.description,
        status=assignment.status,
    )


@router.get("", response_model=list[VisibleHabitResponse])
async def my_habits(
    as_of: date | None = Query(None),
    tz: tzinfo = Depends(_tz_param),
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> list[VisibleHabitResponse]:
    """The caller's active habits with today's completion state."""
    day = as_of or local_today(tz)
    try:
        habits = await visible_own_habits(db, ctx, day, tz)
    except StoreError:
        logger.warning("own_habits_unavailable", user_id=ctx.user_id)
        return []
    return [VisibleHabitResponse.model_validate(h) for h in habits]


@router.get("/friends", response_model=list[VisibleHabitResponse])
async def friends_habits(
    as_of: date | None = Query(None),
    tz: tzinfo = Depends(_tz_param),
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> list[VisibleHabitResponse]:
    """Friends' active habits with today's completion state."""
    day = as_of or local_today(tz)
    try:
        habits = await visible_friends_habits(db, ctx, day, tz)
    except StoreError:
        logger.warning("friends_habits_unavailable", user_id=ctx.user_id)
        return []
    return [VisibleHabitResponse.model_validate(h) for h in habits]


@router.post("", response_model=AssignmentResponse, status_code=201)
async def new_habit(
    body: CreateHabitRequest,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> AssignmentResponse:
    """Create a habit and start tracking it."""
    assignment = await create_habit(db, ctx, body.title, body.description)
    await db.commit()
    return _assignment_response(assignment)


@router.post("/{habit_id}/adopt", response_model=AssignmentResponse, status_code=201)
async def adopt(
    habit_id: int,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> AssignmentResponse:
    """Start tracking a friend's (or one's own) existing habit."""
    assignment = await adopt_habit(db, ctx, habit_id)
    await db.commit()
    return _assignment_response(assignment)


@router.put("/assignments/{assignment_id}/completion", response_model=CompletionResponse)
async def complete(
    assignment_id: int,
    tz: tzinfo = Depends(_tz_param),
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> CompletionResponse:
    """Mark a habit done for today. Repeating the call changes nothing."""
    event = await record_completion(db, ctx, assignment_id, tz)
    await db.commit()
    return CompletionResponse(
        assignment_id=assignment_id,
        completed=True,
        completed_on=event.completed_on,
        completed_at=event.completed_at,
    )


@router.delete("/assignments/{assignment_id}/completion", response_model=CompletionResponse)
async def uncomplete(
    assignment_id: int,
    tz: tzinfo = Depends(_tz_param),
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> CompletionResponse:
    """Undo today's completion."""
    await undo_completion(db, ctx, assignment_id, tz)
    await db.commit()
    return CompletionResponse(assignment_id=assignment_id, completed=False)
