"""Pydantic models for auth HTTP request and response contracts."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class StrictModel(BaseModel):
    """Base model with strict unknown-field rejection."""

    model_config = ConfigDict(extra="forbid")


class RegisterRequest(StrictModel):
    """HTTP request model for self-service registration."""

    display_name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1)
    confirm_password: str = Field(min_length=1)


class LoginRequest(StrictModel):
    """HTTP request model for credential login."""

    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshRequest(StrictModel):
    """HTTP request model carrying one opaque refresh secret."""

    refresh_token: str = Field(min_length=1)


class LogoutRequest(StrictModel):
    """HTTP request model for revoking one refresh secret."""

    refresh_token: str = Field(min_length=1)


class ResendVerificationRequest(StrictModel):
    """HTTP request model for requesting a fresh verification link."""

    email: str = Field(min_length=1)


class UserSummary(StrictModel):
    """Public view of one principal."""

    id: UUID
    display_name: str
    email: str
    email_verified: bool


class SessionResponse(StrictModel):
    """Access/refresh pair returned by register, login and refresh."""

    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime
    token_type: str = "bearer"
    user: UserSummary


class MessageResponse(StrictModel):
    """Plain acknowledgement body."""

    ok: bool = True
    message: str


class RevokeAllResponse(StrictModel):
    """Response body for revoke-all carrying affected row count."""

    ok: bool = True
    revoked_count: int


class WeakPasswordDetail(StrictModel):
    """Error detail listing every violated password rule."""

    message: str
    violations: list[str]
