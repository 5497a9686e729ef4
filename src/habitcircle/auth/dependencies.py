"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from habitcircle.auth.jwt import verify_token
from habitcircle.auth.service import get_active_session, get_user_by_id
from habitcircle.auth.session import SessionContext
from habitcircle.database import get_session

_bearer = HTTPBearer()


async def get_session_context(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> SessionContext:
    """
    Verify the bearer token and build the caller's SessionContext.

    The token's session must still be active: signing out invalidates every
    access token issued for that session. Raises 401 on failure.
    """
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user_id = int(payload["sub"])
    session = await get_active_session(db, payload["sid"], user_id)
    if session is None:
        raise HTTPException(status_code=401, detail="Session has ended")

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return SessionContext.for_user(user, session.id)
