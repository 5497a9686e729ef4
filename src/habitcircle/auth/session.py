"""The explicit per-request session context passed to every core operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from habitcircle.db.models import User


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Who is acting, and under which signed-in session.

    Created from a verified access token whose session is still active;
    becomes useless once that session is signed out.
    """

    user_id: int
    email: str
    username: str
    session_id: str

    @classmethod
    def for_user(cls, user: User, session_id: str) -> SessionContext:
        return cls(
            user_id=user.id,
            email=user.email,
            username=user.username,
            session_id=session_id,
        )
