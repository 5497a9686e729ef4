"""Request/response schemas for profile endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ProfileUpdateRequest(BaseModel):
    """Update profile fields. Omitted fields are left unchanged."""

    full_name: str | None = Field(None, max_length=128)
    avatar_url: str | None = Field(None, max_length=512)


class PublicUserResponse(BaseModel):
    """Public-facing profile: no email, no login metadata."""

    id: int
    username: str
    full_name: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
