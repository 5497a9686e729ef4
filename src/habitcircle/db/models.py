"""ORM models.

The schema is created by the Alembic migrations under ``alembic/versions``;
tests build it directly from this metadata.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from habitcircle.db.base import Base, BigIntId

FRIENDSHIP_PENDING = "pending"
FRIENDSHIP_ACCEPTED = "accepted"

ASSIGNMENT_ACTIVE = "active"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A registered account and its public profile."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    login_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    sessions: Mapped[list[AuthSession]] = relationship("AuthSession", back_populates="user")


# ---------------------------------------------------------------------------
# Auth: sessions
# ---------------------------------------------------------------------------


class AuthSession(Base):
    """A signed-in session, identified by the JTI of its refresh token."""

    __tablename__ = "auth_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    refresh_token_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    replaced_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="sessions")


# ---------------------------------------------------------------------------
# Friendships
# ---------------------------------------------------------------------------


class Friendship(Base):
    """One row per unordered pair of users.

    ``requester_id``/``target_id`` keep the direction of the original request;
    ``user_low_id``/``user_high_id`` hold the same pair in canonical order and
    carry the uniqueness constraint.
    """

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_friendships_pair"),
        CheckConstraint("user_low_id < user_high_id", name="ck_friendships_pair_order"),
        CheckConstraint("status IN ('pending', 'accepted')", name="ck_friendships_status"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    requester_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_low_id: Mapped[int] = mapped_column(BigIntId, nullable=False)
    user_high_id: Mapped[int] = mapped_column(BigIntId, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=FRIENDSHIP_PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @staticmethod
    def canonical_pair(a: int, b: int) -> tuple[int, int]:
        """Return ``(low, high)`` for two user ids."""
        return (a, b) if a < b else (b, a)

    def other_party(self, user_id: int) -> int:
        """Return the endpoint that is not ``user_id``."""
        return self.target_id if self.requester_id == user_id else self.requester_id


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------


class Habit(Base):
    """A habit template. Immutable once created."""

    __tablename__ = "habits"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    creator_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class HabitAssignment(Base):
    """Binds a habit to one user who is actively tracking it."""

    __tablename__ = "player_habits"
    __table_args__ = (
        UniqueConstraint("habit_id", "owner_id", name="uq_player_habits_habit_owner"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    habit_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    owner_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ASSIGNMENT_ACTIVE)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    habit: Mapped[Habit] = relationship("Habit")


class CompletionEvent(Base):
    """A completion of an assignment on one local calendar day."""

    __tablename__ = "habit_completions"
    __table_args__ = (
        UniqueConstraint("assignment_id", "completed_on", name="uq_habit_completions_day"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    assignment_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("player_habits.id", ondelete="CASCADE"), nullable=False, index=True
    )
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_on: Mapped[date] = mapped_column(Date, nullable=False)
