"""Port for signed access token issuance and parsing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from ideaboard_auth.application.ports.user_repository_port import UserRecord


class InvalidAccessTokenError(ValueError):
    """Raised when an access token fails signature, claim or expiry checks."""


@dataclass(frozen=True)
class IssuedAccessToken:
    """Signed access token and the metadata minted with it."""

    token: str
    token_id: str
    expires_at: datetime


@dataclass(frozen=True)
class AccessTokenClaims:
    """Verified claims carried by one access token."""

    user_id: str
    email: str
    display_name: str
    token_id: str
    expires_at: datetime


class AccessTokenCodecPort(Protocol):
    """Access token codec contract."""

    def issue(self, user: UserRecord) -> IssuedAccessToken:
        """Mint a signed, time-bounded access token for one user."""

    def parse_token_id(self, token: str) -> str | None:
        """Return the embedded token id when the signature is valid, else None."""

    def decode(self, token: str) -> AccessTokenClaims:
        """Fully verify one access token, raising InvalidAccessTokenError."""
