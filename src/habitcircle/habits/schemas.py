"""Request/response schemas for habit endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class CreateHabitRequest(BaseModel):
    title: str = Field(..., max_length=200)
    description: str = Field("", max_length=2000)


class VisibleHabitResponse(BaseModel):
    """A habit as shown on the dashboard."""

    assignment_id: int
    habit_id: int
    title: str
    description: str
    created_at: datetime
    owner_id: int
    owner_username: str
    owner_full_name: str | None = None
    completed_today: bool

    model_config = {"from_attributes": True}


class AssignmentResponse(BaseModel):
    assignment_id: int
    habit_id: int
    title: str
    description: str
    status: str


class CompletionResponse(BaseModel):
    assignment_id: int
    completed: bool
    completed_on: date | None = None
    completed_at: datetime | None = None
