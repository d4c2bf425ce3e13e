"""Development notifier that logs verification links instead of sending them."""

from __future__ import annotations

import logging

from ideaboard_auth.application.ports.verification_notifier_port import VerificationNotifierPort
from ideaboard_auth.infrastructure.logging import redact_email

logger = logging.getLogger(__name__)


class LoggingVerificationNotifier(VerificationNotifierPort):
    """Write verification links to the process log when no SMTP relay is configured."""

    async def send_verification_email(
        self,
        *,
        to_email: str,
        display_name: str,
        verification_url: str,
    ) -> None:
        logger.info(
            "verification_email_dev_mode to=%s url=%s",
            redact_email(to_email),
            verification_url,
        )
