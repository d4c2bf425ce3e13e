"""Port for delivering email verification links."""

from __future__ import annotations

from typing import Protocol


class NotificationDeliveryError(RuntimeError):
    """Raised when a verification message could not be handed to the provider."""


class VerificationNotifierPort(Protocol):
    """Verification email delivery contract."""

    async def send_verification_email(
        self,
        *,
        to_email: str,
        display_name: str,
        verification_url: str,
    ) -> None:
        """Deliver one verification link, raising NotificationDeliveryError on failure."""
