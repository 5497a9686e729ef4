"""Friend endpoints: /api/v1/friends/*."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from habitcircle.auth.dependencies import get_session_context
from habitcircle.auth.session import SessionContext
from habitcircle.database import get_session
from habitcircle.errors import StoreError
from habitcircle.friends.requests import remove_friend, respond_to_request, send_request
from habitcircle.friends.resolver import resolve_friends, resolve_pending_incoming
from habitcircle.friends.schemas import (
    FriendResponse,
    FriendshipResponse,
    PendingRequestResponse,
    RespondBody,
    RespondResponse,
    SendRequestBody,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/friends", tags=["Friends"])


@router.get("", response_model=list[FriendResponse])
async def list_friends(
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> list[FriendResponse]:
    """Accepted friends of the caller. Empty when the store is unavailable."""
    try:
        friends = await resolve_friends(db, ctx)
    except StoreError:
        logger.warning("friends_fetch_failed", user_id=ctx.user_id)
        return []
    return [FriendResponse.model_validate(f) for f in friends]


@router.delete("/{friend_id}", status_code=204)
async def unfriend(
    friend_id: int,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> None:
    """Remove an accepted friend."""
    await remove_friend(db, ctx, friend_id)
    await db.commit()


@router.get("/requests/incoming", response_model=list[PendingRequestResponse])
async def list_incoming_requests(
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> list[PendingRequestResponse]:
    """Pending requests addressed to the caller, oldest first."""
    try:
        pending = await resolve_pending_incoming(db, ctx)
    except StoreError:
        logger.warning("friend_requests_fetch_failed", user_id=ctx.user_id)
        return []
    return [PendingRequestResponse.model_validate(p) for p in pending]


@router.post("/requests", response_model=FriendshipResponse, status_code=201)
async def create_request(
    body: SendRequestBody,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> FriendshipResponse:
    """Send a friend request by username."""
    friendship = await send_request(db, ctx, body.username)
    await db.commit()
    return FriendshipResponse.model_validate(friendship)


@router.post("/requests/{request_id}/respond", response_model=RespondResponse)
async def respond(
    request_id: int,
    body: RespondBody,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> RespondResponse:
    """Accept or decline (recipient), or withdraw (sender) a pending request."""
    friendship = await respond_to_request(db, ctx, request_id, body.accept)
    await db.commit()
    if friendship is None:
        return RespondResponse(status="deleted")
    return RespondResponse(status="accepted", friendship=FriendshipResponse.model_validate(friendship))
