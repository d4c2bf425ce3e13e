"""Port for refresh token persistence operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from ideaboard_auth.domain.auth.token_state import RefreshTokenState, classify_refresh_token


class SessionStoreUnavailableError(RuntimeError):
    """Raised when a session store write fails and was rolled back."""


@dataclass(frozen=True)
class RefreshTokenCreateInput:
    """Input payload for inserting one refresh token row."""

    token_id: UUID
    user_id: UUID
    token_hash: str
    access_token_id: str
    created_at: datetime
    created_by_ip: str | None
    expires_at: datetime


@dataclass(frozen=True)
class RefreshTokenRecord:
    """Persisted refresh token model. The plaintext secret is never stored."""

    token_id: UUID
    user_id: UUID
    token_hash: str
    access_token_id: str
    created_at: datetime
    created_by_ip: str | None
    expires_at: datetime
    revoked_at: datetime | None
    revoked_by_ip: str | None
    replaced_by_token_id: UUID | None
    used: bool
    used_at: datetime | None

    def state_at(self, now: datetime) -> RefreshTokenState:
        """Return lifecycle state of this row at instant `now`."""

        return classify_refresh_token(
            used=self.used,
            revoked_at=self.revoked_at,
            expires_at=self.expires_at,
            now=now,
        )


class RefreshTokenRepositoryPort(Protocol):
    """Refresh token persistence contract."""

    async def create_token(self, payload: RefreshTokenCreateInput) -> RefreshTokenRecord:
        """Persist a new refresh token row."""

    async def get_by_hash(self, *, token_hash: str) -> RefreshTokenRecord | None:
        """Return token row by digest regardless of state."""

    async def list_for_user(self, *, user_id: UUID) -> list[RefreshTokenRecord]:
        """Return every token row of one user ordered by creation time."""

    async def rotate_token(
        self,
        *,
        token_id: UUID,
        now: datetime,
        ip_address: str | None,
        successor: RefreshTokenCreateInput,
    ) -> RefreshTokenRecord | None:
        """Atomically mark one active row used and insert its successor.

        Returns the successor row, or None when the row was no longer active
        (a concurrent rotation or revocation won). Store failures roll the
        whole unit back and raise SessionStoreUnavailableError.
        """

    async def revoke_token(
        self,
        *,
        token_id: UUID,
        now: datetime,
        ip_address: str | None,
    ) -> bool:
        """Revoke one row if not yet revoked and return whether it changed."""

    async def revoke_active_tokens_for_user(
        self,
        *,
        user_id: UUID,
        now: datetime,
        ip_address: str | None,
    ) -> int:
        """Revoke all currently non-revoked tokens for one user and return affected count."""
