"""Profile router: all /api/v1/users/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from habitcircle.auth.dependencies import get_session_context
from habitcircle.auth.schemas import UserResponse
from habitcircle.auth.session import SessionContext
from habitcircle.database import get_session
from habitcircle.users.schemas import ProfileUpdateRequest, PublicUserResponse
from habitcircle.users.service import get_profile, get_public_profile, update_profile

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def read_my_profile(
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Get own full profile."""
    return UserResponse.model_validate(await get_profile(db, ctx))


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    body: ProfileUpdateRequest,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Update display name and avatar."""
    user = await update_profile(db, ctx, full_name=body.full_name, avatar_url=body.avatar_url)
    await db.commit()
    return UserResponse.model_validate(user)


@router.get("/{username}", response_model=PublicUserResponse)
async def read_public_profile(
    username: str,
    _ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
) -> PublicUserResponse:
    """Find a user by username."""
    return PublicUserResponse.model_validate(await get_public_profile(db, username))
