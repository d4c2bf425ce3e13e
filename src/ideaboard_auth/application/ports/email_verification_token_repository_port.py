"""Port for email verification token persistence operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from ideaboard_auth.domain.auth.token_state import is_verification_token_consumable


@dataclass(frozen=True)
class EmailVerificationTokenCreateInput:
    """Input payload for inserting one verification token row."""

    token_id: UUID
    user_id: UUID
    token_hash: str
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class EmailVerificationTokenRecord:
    """Persisted email verification token model."""

    token_id: UUID
    user_id: UUID
    token_hash: str
    created_at: datetime
    expires_at: datetime
    verified_at: datetime | None

    def is_consumable_at(self, now: datetime) -> bool:
        """Return whether this token can still verify its owner at `now`."""

        return is_verification_token_consumable(
            verified_at=self.verified_at,
            expires_at=self.expires_at,
            now=now,
        )


class EmailVerificationTokenRepositoryPort(Protocol):
    """Email verification token persistence contract."""

    async def create_token(
        self,
        payload: EmailVerificationTokenCreateInput,
    ) -> EmailVerificationTokenRecord:
        """Persist a new verification token row."""

    async def replace_pending_tokens(
        self,
        payload: EmailVerificationTokenCreateInput,
    ) -> EmailVerificationTokenRecord:
        """Delete the user's unverified rows and insert `payload` in one transaction."""

    async def get_by_hash(self, *, token_hash: str) -> EmailVerificationTokenRecord | None:
        """Return token row by digest regardless of state."""

    async def get_latest_for_user(self, *, user_id: UUID) -> EmailVerificationTokenRecord | None:
        """Return the most recently created token row of one user."""

    async def consume_token(self, *, token_id: UUID, user_id: UUID, now: datetime) -> bool:
        """Stamp token verified and mark its user verified in one transaction.

        Returns False when the token was already verified or expired by the
        time the write ran.
        """

    async def delete_pending_for_user(self, *, user_id: UUID) -> int:
        """Delete unverified rows of one user and return deleted count."""
