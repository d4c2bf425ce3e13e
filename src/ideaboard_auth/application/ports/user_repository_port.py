"""Port for principal persistence operations used by authentication services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID


class DuplicateUserEmailError(ValueError):
    """Raised when an email is already bound to a non-deleted user."""


@dataclass(frozen=True)
class UserCreateInput:
    """Input payload for inserting one principal row."""

    display_name: str
    email: str
    password_hash: str


@dataclass(frozen=True)
class UserRecord:
    """Principal persistence model."""

    user_id: UUID
    display_name: str
    email: str
    password_hash: str
    email_verified: bool
    email_verified_at: datetime | None
    is_deleted: bool
    created_at: datetime
    updated_at: datetime


class UserRepositoryPort(Protocol):
    """User repository contract.

    Lookups named `get_active_*` apply the soft-delete predicate; `get_by_*`
    lookups return deleted rows too and exist for administrative use.
    """

    async def get_by_id(self, *, user_id: UUID) -> UserRecord | None:
        """Return user by id, including deleted users."""

    async def get_active_by_id(self, *, user_id: UUID) -> UserRecord | None:
        """Return non-deleted user by id or None."""

    async def get_active_by_email(self, *, email: str) -> UserRecord | None:
        """Return non-deleted user by normalized email or None."""

    async def create_user(self, payload: UserCreateInput) -> UserRecord:
        """Insert one unverified user, raising DuplicateUserEmailError on conflict."""

    async def mark_deleted(self, *, user_id: UUID) -> UserRecord | None:
        """Soft-delete one user and return the updated row, or None when missing."""
