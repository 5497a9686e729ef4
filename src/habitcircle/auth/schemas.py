"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """Sign-up request. The username defaults to the email's local part."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    username: str | None = Field(None, min_length=1, max_length=64)
    full_name: str | None = Field(None, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class LoginRequest(BaseModel):
    """Sign in with email + password."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class RefreshRequest(BaseModel):
    """Refresh token rotation request."""

    refresh_token: str


class LogoutRequest(BaseModel):
    """Sign out (ends the session of this refresh token)."""

    refresh_token: str


class UserResponse(BaseModel):
    """Full profile of the signed-in user."""

    id: int
    email: str
    username: str
    full_name: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None
    last_login: datetime | None = None
    login_count: int = 0

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    """Token response returned after successful auth."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 3600
    user: UserResponse


class CurrentUserResponse(BaseModel):
    """The identity behind the current session."""

    id: int
    email: str
    username: str
    session_id: str


class LogoutAllResponse(BaseModel):
    """Result of ending every session of the current user."""

    status: str = "all_sessions_revoked"
    revoked_count: int
