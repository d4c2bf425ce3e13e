"""SMTP adapter delivering verification links."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr

from ideaboard_auth.application.ports.verification_notifier_port import (
    NotificationDeliveryError,
    VerificationNotifierPort,
)
from ideaboard_auth.infrastructure.email.message_templates import (
    VERIFICATION_SUBJECT,
    build_verification_html,
    build_verification_text,
)
from ideaboard_auth.infrastructure.logging import redact_email

logger = logging.getLogger(__name__)

_SMTP_TIMEOUT_SECONDS = 30.0


class SmtpVerificationNotifier(VerificationNotifierPort):
    """Send verification emails through one SMTP relay.

    `smtplib` is blocking, so each delivery runs in a worker thread.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        from_address: str,
        from_name: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout_seconds: float = _SMTP_TIMEOUT_SECONDS,
    ) -> None:
        self._host = host
        self._port = port
        self._from_address = from_address
        self._from_name = from_name
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout_seconds = timeout_seconds

    async def send_verification_email(
        self,
        *,
        to_email: str,
        display_name: str,
        verification_url: str,
    ) -> None:
        message = self.build_message(
            to_email=to_email,
            display_name=display_name,
            verification_url=verification_url,
        )
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as error:
            logger.error(
                "verification_email_send_failed to=%s host=%s error_type=%s",
                redact_email(to_email),
                self._host,
                type(error).__name__,
            )
            raise NotificationDeliveryError(f"smtp delivery failed: {type(error).__name__}") from error

        logger.info("verification_email_sent to=%s", redact_email(to_email))

    def build_message(
        self,
        *,
        to_email: str,
        display_name: str,
        verification_url: str,
    ) -> EmailMessage:
        """Build the multipart verification message."""

        message = EmailMessage()
        message["Subject"] = VERIFICATION_SUBJECT
        message["From"] = formataddr((self._from_name, self._from_address))
        message["To"] = to_email
        message.set_content(
            build_verification_text(display_name=display_name, verification_url=verification_url)
        )
        message.add_alternative(
            build_verification_html(display_name=display_name, verification_url=verification_url),
            subtype="html",
        )
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self._use_tls:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout_seconds) as server:
                server.starttls(context=context)
                self._login_if_configured(server)
                server.send_message(message)
            return

        with smtplib.SMTP_SSL(
            self._host,
            self._port,
            context=context,
            timeout=self._timeout_seconds,
        ) as server:
            self._login_if_configured(server)
            server.send_message(message)

    def _login_if_configured(self, server: smtplib.SMTP) -> None:
        if self._username and self._password:
            server.login(self._username, self._password)
