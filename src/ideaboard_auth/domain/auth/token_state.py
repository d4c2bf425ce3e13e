"""Auth token lifecycle states and deterministic validity checks."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum


class RefreshTokenState(StrEnum):
    """Lifecycle states of one persisted refresh token row."""

    ACTIVE = "active"
    USED = "used"
    REVOKED = "revoked"
    EXPIRED = "expired"


def classify_refresh_token(
    *,
    used: bool,
    revoked_at: datetime | None,
    expires_at: datetime,
    now: datetime,
) -> RefreshTokenState:
    """Classify one refresh token row at instant `now`.

    A rotated token is reported as USED even after it was revoked or expired,
    because presenting it again is a reuse signal. A token expires at the
    exact instant of `expires_at`.
    """

    if used:
        return RefreshTokenState.USED
    if revoked_at is not None:
        return RefreshTokenState.REVOKED
    if now >= expires_at:
        return RefreshTokenState.EXPIRED
    return RefreshTokenState.ACTIVE


def is_verification_token_consumable(
    *,
    verified_at: datetime | None,
    expires_at: datetime,
    now: datetime,
) -> bool:
    """Return whether an email verification token can still verify its owner."""

    return verified_at is None and now < expires_at
