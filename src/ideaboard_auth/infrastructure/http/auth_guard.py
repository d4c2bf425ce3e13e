"""Bearer header parsing and access-token guard for authenticated endpoints."""

from __future__ import annotations

from uuid import UUID

from ideaboard_auth.application.ports.access_token_codec_port import (
    AccessTokenCodecPort,
    InvalidAccessTokenError,
)
from ideaboard_auth.application.ports.user_repository_port import UserRecord, UserRepositoryPort


class MissingAuthTokenError(PermissionError):
    """Raised when a bearer token is required but not provided."""


class InvalidAuthTokenError(PermissionError):
    """Raised when bearer token header or the token itself is invalid."""


def extract_bearer_token(authorization_header: str | None) -> str:
    """Extract token from standard `Authorization: Bearer <token>` header."""

    if authorization_header is None or not authorization_header.strip():
        raise MissingAuthTokenError("missing bearer token")

    parts = authorization_header.strip().split()
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise InvalidAuthTokenError("invalid bearer token header")

    return parts[1]


class AccessTokenGuard:
    """Resolve the caller of an authenticated endpoint from its access token."""

    def __init__(
        self,
        *,
        access_tokens: AccessTokenCodecPort,
        user_repository: UserRepositoryPort,
    ) -> None:
        self._access_tokens = access_tokens
        self._user_repository = user_repository

    async def require_user(self, *, authorization_header: str | None) -> UserRecord:
        """Return the non-deleted principal named by a fully valid access token."""

        token = extract_bearer_token(authorization_header)
        try:
            claims = self._access_tokens.decode(token)
            user_id = UUID(claims.user_id)
        except (InvalidAccessTokenError, ValueError) as error:
            raise InvalidAuthTokenError("invalid or expired access token") from error

        user = await self._user_repository.get_active_by_id(user_id=user_id)
        if user is None:
            raise InvalidAuthTokenError("invalid or expired access token")
        return user
