"""Request/response schemas for friend endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class FriendResponse(BaseModel):
    friend_id: int
    username: str
    full_name: str | None = None
    friendship_id: int

    model_config = {"from_attributes": True}


class PendingRequestResponse(BaseModel):
    request_id: int
    requester_id: int
    username: str
    full_name: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SendRequestBody(BaseModel):
    """Send a friend request by username."""

    username: str = Field(..., max_length=64)


class RespondBody(BaseModel):
    """Accept (true) or decline (false) a pending request."""

    accept: bool


class FriendshipResponse(BaseModel):
    id: int
    requester_id: int
    target_id: int
    status: str
    created_at: datetime
    responded_at: datetime | None = None

    model_config = {"from_attributes": True}


class RespondResponse(BaseModel):
    status: str
    friendship: FriendshipResponse | None = None
