"""Application service for administrative principal lifecycle operations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

from ideaboard_auth.application.ports.auth_event_repository_port import (
    AuthEventCreateInput,
    AuthEventRepositoryPort,
)
from ideaboard_auth.application.ports.email_verification_token_repository_port import (
    EmailVerificationTokenRepositoryPort,
)
from ideaboard_auth.application.ports.refresh_token_repository_port import (
    RefreshTokenRepositoryPort,
)
from ideaboard_auth.application.ports.user_repository_port import UserRecord, UserRepositoryPort

logger = logging.getLogger(__name__)


class UserNotFoundError(LookupError):
    """Raised when a target user cannot be found for one management action."""

    def __init__(self, *, user_id: UUID) -> None:
        super().__init__(f"user not found: {user_id}")
        self.user_id = user_id


class UserManagementService:
    """Expose principal removal without physically deleting rows."""

    def __init__(
        self,
        *,
        users: UserRepositoryPort,
        refresh_tokens: RefreshTokenRepositoryPort,
        verification_tokens: EmailVerificationTokenRepositoryPort,
        auth_events: AuthEventRepositoryPort,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._users = users
        self._refresh_tokens = refresh_tokens
        self._verification_tokens = verification_tokens
        self._auth_events = auth_events
        self._now = now or (lambda: datetime.now(tz=UTC))

    async def soft_delete_user(self, *, user_id: UUID, ip_address: str | None = None) -> UserRecord:
        """Mark one user deleted, revoke its sessions and drop pending verification links."""

        target = await self._users.get_active_by_id(user_id=user_id)
        if target is None:
            raise UserNotFoundError(user_id=user_id)

        removed = await self._users.mark_deleted(user_id=user_id)
        if removed is None:  # pragma: no cover - target already loaded.
            raise UserNotFoundError(user_id=user_id)

        revoked = await self._refresh_tokens.revoke_active_tokens_for_user(
            user_id=user_id,
            now=self._now(),
            ip_address=ip_address,
        )
        dropped = await self._verification_tokens.delete_pending_for_user(user_id=user_id)
        logger.info(
            "user_soft_deleted user_id=%s revoked_tokens=%s dropped_verifications=%s",
            user_id,
            revoked,
            dropped,
        )
        await self._auth_events.append_event(
            AuthEventCreateInput(
                user_id=user_id,
                event_type="user_deleted",
                ip_address=ip_address,
                user_agent=None,
                payload={"revoked_count": revoked},
            )
        )
        return removed
