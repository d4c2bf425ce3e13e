"""Auth orchestrator for registration, session rotation, and email verification."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from ideaboard_auth.application.ports.access_token_codec_port import AccessTokenCodecPort
from ideaboard_auth.application.ports.auth_event_repository_port import (
    AuthEventCreateInput,
    AuthEventRepositoryPort,
)
from ideaboard_auth.application.ports.email_verification_token_repository_port import (
    EmailVerificationTokenCreateInput,
    EmailVerificationTokenRepositoryPort,
)
from ideaboard_auth.application.ports.password_hasher_port import PasswordHasherPort
from ideaboard_auth.application.ports.refresh_token_repository_port import (
    RefreshTokenCreateInput,
    RefreshTokenRecord,
    RefreshTokenRepositoryPort,
)
from ideaboard_auth.application.ports.secret_service_port import SecretServicePort
from ideaboard_auth.application.ports.user_repository_port import (
    DuplicateUserEmailError,
    UserCreateInput,
    UserRecord,
    UserRepositoryPort,
)
from ideaboard_auth.application.ports.verification_notifier_port import (
    NotificationDeliveryError,
    VerificationNotifierPort,
)
from ideaboard_auth.domain.auth.credentials import normalize_display_name, normalize_user_email
from ideaboard_auth.domain.auth.password_policy import evaluate_password
from ideaboard_auth.domain.auth.token_state import RefreshTokenState
from ideaboard_auth.domain.auth.verification_link import build_verification_url

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_TOKEN_TTL = timedelta(days=7)
DEFAULT_VERIFICATION_TOKEN_TTL = timedelta(hours=24)
DEFAULT_RESEND_COOLDOWN = timedelta(minutes=2)
DEFAULT_PASSWORD_MIN_LENGTH = 8


class AuthOutcome(StrEnum):
    """Supported auth orchestration outcomes."""

    SUCCESS = "success"
    DUPLICATE_EMAIL = "duplicate_email"
    WEAK_CREDENTIAL = "weak_credential"
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_VERIFIED = "email_not_verified"
    INVALID_TOKEN = "invalid_token"
    VERIFICATION_FAILED = "verification_failed"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class IssuedSession:
    """Access/refresh pair handed to the caller exactly once."""

    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime
    user: UserRecord


@dataclass(frozen=True)
class AuthResult:
    """Auth orchestration result model."""

    outcome: AuthOutcome
    session: IssuedSession | None = None
    user: UserRecord | None = None
    violations: tuple[str, ...] = ()
    revoked_count: int = 0


class AuthService:
    """Drive the credential and session lifecycle over persistence ports.

    Refresh tokens are single use: redeeming one marks it used and links it to
    its successor in one store transaction. Presenting a used token again is
    treated as theft and revokes every outstanding token of its owner.
    """

    def __init__(
        self,
        *,
        users: UserRepositoryPort,
        refresh_tokens: RefreshTokenRepositoryPort,
        verification_tokens: EmailVerificationTokenRepositoryPort,
        auth_events: AuthEventRepositoryPort,
        password_hasher: PasswordHasherPort,
        access_tokens: AccessTokenCodecPort,
        secret_service: SecretServicePort,
        notifier: VerificationNotifierPort,
        verification_base_url: str,
        refresh_token_ttl: timedelta = DEFAULT_REFRESH_TOKEN_TTL,
        verification_token_ttl: timedelta = DEFAULT_VERIFICATION_TOKEN_TTL,
        resend_cooldown: timedelta = DEFAULT_RESEND_COOLDOWN,
        password_min_length: int = DEFAULT_PASSWORD_MIN_LENGTH,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._users = users
        self._refresh_tokens = refresh_tokens
        self._verification_tokens = verification_tokens
        self._auth_events = auth_events
        self._password_hasher = password_hasher
        self._access_tokens = access_tokens
        self._secret_service = secret_service
        self._notifier = notifier
        self._verification_base_url = verification_base_url
        self._refresh_token_ttl = refresh_token_ttl
        self._verification_token_ttl = verification_token_ttl
        self._resend_cooldown = resend_cooldown
        self._password_min_length = password_min_length
        self._now = now or (lambda: datetime.now(tz=UTC))

    async def register(
        self,
        *,
        display_name: str,
        email: str,
        password: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthResult:
        """Create an unverified principal, send its verification link, issue a session.

        Raises ValueError for blank email or display name.
        """

        normalized_email = normalize_user_email(email=email)
        normalized_name = normalize_display_name(display_name=display_name)

        if await self._users.get_active_by_email(email=normalized_email) is not None:
            return await self._reject_duplicate_email(
                email=normalized_email,
                ip_address=ip_address,
                user_agent=user_agent,
            )

        violations = evaluate_password(
            password,
            min_length=self._password_min_length,
            email=normalized_email,
            display_name=normalized_name,
        )
        if violations:
            logger.info("register_rejected reason=weak_credential violations=%s", violations)
            return AuthResult(outcome=AuthOutcome.WEAK_CREDENTIAL, violations=tuple(violations))

        try:
            user = await self._users.create_user(
                UserCreateInput(
                    display_name=normalized_name,
                    email=normalized_email,
                    password_hash=self._password_hasher.hash_password(password),
                )
            )
        except DuplicateUserEmailError:
            return await self._reject_duplicate_email(
                email=normalized_email,
                ip_address=ip_address,
                user_agent=user_agent,
            )

        logger.info("user_registered user_id=%s ip=%s", user.user_id, ip_address)
        await self._append_event(
            user_id=user.user_id,
            event_type="user_registered",
            ip_address=ip_address,
            user_agent=user_agent,
        )

        await self._send_verification(
            user=user,
            replace_pending=False,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        session = await self._issue_session(user=user, ip_address=ip_address)
        return AuthResult(outcome=AuthOutcome.SUCCESS, session=session, user=user)

    async def login(
        self,
        *,
        email: str,
        password: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthResult:
        """Authenticate credentials of a verified principal and issue a session."""

        normalized_email = email.strip().lower()
        user = await self._users.get_active_by_email(email=normalized_email)
        if user is None:
            logger.warning(
                "login_failed reason=unknown_user ip=%s",
                ip_address,
            )
            await self._append_event(
                user_id=None,
                event_type="login_failed",
                ip_address=ip_address,
                user_agent=user_agent,
                payload={"email": normalized_email, "reason": "invalid_credentials"},
            )
            return AuthResult(outcome=AuthOutcome.INVALID_CREDENTIALS)

        if not user.email_verified:
            logger.info("login_blocked reason=email_not_verified user_id=%s ip=%s", user.user_id, ip_address)
            await self._append_event(
                user_id=user.user_id,
                event_type="login_blocked_unverified",
                ip_address=ip_address,
                user_agent=user_agent,
                payload={"email": normalized_email},
            )
            return AuthResult(outcome=AuthOutcome.EMAIL_NOT_VERIFIED)

        is_valid = self._password_hasher.verify_password(
            password=password,
            password_hash=user.password_hash,
        )
        if not is_valid:
            logger.warning("login_failed reason=bad_password user_id=%s ip=%s", user.user_id, ip_address)
            await self._append_event(
                user_id=user.user_id,
                event_type="login_failed",
                ip_address=ip_address,
                user_agent=user_agent,
                payload={"email": normalized_email, "reason": "invalid_credentials"},
            )
            return AuthResult(outcome=AuthOutcome.INVALID_CREDENTIALS)

        session = await self._issue_session(user=user, ip_address=ip_address)
        await self._append_event(
            user_id=user.user_id,
            event_type="login_success",
            ip_address=ip_address,
            user_agent=user_agent,
            payload={"email": normalized_email},
        )
        return AuthResult(outcome=AuthOutcome.SUCCESS, session=session, user=user)

    async def refresh(
        self,
        *,
        refresh_token: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthResult:
        """Redeem one refresh secret for a new pair, detecting reuse of rotated secrets.

        Raises SessionStoreUnavailableError when the rotation write failed and
        was rolled back; the presented secret then stays redeemable.
        """

        token_hash = self._secret_service.hash_secret(refresh_token)
        record = await self._refresh_tokens.get_by_hash(token_hash=token_hash)
        if record is None:
            logger.warning("refresh_rejected reason=unknown_token ip=%s", ip_address)
            return AuthResult(outcome=AuthOutcome.INVALID_TOKEN)

        state = record.state_at(self._now())
        if state is RefreshTokenState.USED:
            return await self._handle_reuse(
                record=record,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        if state is not RefreshTokenState.ACTIVE:
            return await self._reject_refresh(
                record=record,
                reason=state.value,
                ip_address=ip_address,
                user_agent=user_agent,
            )

        user = await self._users.get_active_by_id(user_id=record.user_id)
        if user is None or not user.email_verified:
            return await self._reject_refresh(
                record=record,
                reason="inactive_user",
                ip_address=ip_address,
                user_agent=user_agent,
            )

        session, successor = self._mint_session(user=user, ip_address=ip_address)
        rotated = await self._refresh_tokens.rotate_token(
            token_id=record.token_id,
            now=successor.created_at,
            ip_address=ip_address,
            successor=successor,
        )
        if rotated is None:
            # Another request changed the row between our read and the
            # conditional write; judge it again from its current state.
            current = await self._refresh_tokens.get_by_hash(token_hash=token_hash)
            if current is not None and current.state_at(self._now()) is RefreshTokenState.USED:
                return await self._handle_reuse(
                    record=current,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            return await self._reject_refresh(
                record=current or record,
                reason="concurrent_update",
                ip_address=ip_address,
                user_agent=user_agent,
            )

        logger.info(
            "refresh_rotated user_id=%s previous_token_id=%s token_id=%s ip=%s",
            user.user_id,
            record.token_id,
            rotated.token_id,
            ip_address,
        )
        await self._append_event(
            user_id=user.user_id,
            event_type="refresh_rotated",
            ip_address=ip_address,
            user_agent=user_agent,
            payload={
                "previous_token_id": str(record.token_id),
                "token_id": str(rotated.token_id),
            },
        )
        return AuthResult(outcome=AuthOutcome.SUCCESS, session=session, user=user)

    async def logout(
        self,
        *,
        refresh_token: str,
        ip_address: str | None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Revoke the presented refresh token; revoking twice is a no-op success."""

        token_hash = self._secret_service.hash_secret(refresh_token)
        record = await self._refresh_tokens.get_by_hash(token_hash=token_hash)
        if record is None:
            logger.warning("logout_rejected reason=unknown_token ip=%s", ip_address)
            return AuthResult(outcome=AuthOutcome.INVALID_TOKEN)

        changed = await self._refresh_tokens.revoke_token(
            token_id=record.token_id,
            now=self._now(),
            ip_address=ip_address,
        )
        if changed:
            logger.info("logout user_id=%s token_id=%s ip=%s", record.user_id, record.token_id, ip_address)
            await self._append_event(
                user_id=record.user_id,
                event_type="logout",
                ip_address=ip_address,
                user_agent=user_agent,
                payload={"token_id": str(record.token_id)},
            )
        return AuthResult(outcome=AuthOutcome.SUCCESS)

    async def revoke_all(
        self,
        *,
        user_id: UUID,
        ip_address: str | None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Revoke every outstanding refresh token of one principal."""

        user = await self._users.get_active_by_id(user_id=user_id)
        if user is None:
            return AuthResult(outcome=AuthOutcome.NOT_FOUND)

        revoked = await self._refresh_tokens.revoke_active_tokens_for_user(
            user_id=user_id,
            now=self._now(),
            ip_address=ip_address,
        )
        logger.warning("refresh_tokens_revoked_all user_id=%s ip=%s revoked=%s", user_id, ip_address, revoked)
        await self._append_event(
            user_id=user_id,
            event_type="refresh_tokens_revoked_all",
            ip_address=ip_address,
            user_agent=user_agent,
            payload={"revoked_count": revoked},
        )
        return AuthResult(outcome=AuthOutcome.SUCCESS, user=user, revoked_count=revoked)

    async def verify_email(
        self,
        *,
        user_id: UUID,
        token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Consume one verification secret and mark its principal verified."""

        user = await self._users.get_active_by_id(user_id=user_id)
        if user is None:
            logger.warning("email_verification_failed reason=unknown_user user_id=%s", user_id)
            return AuthResult(outcome=AuthOutcome.VERIFICATION_FAILED)
        if user.email_verified:
            return AuthResult(outcome=AuthOutcome.SUCCESS, user=user)

        now = self._now()
        record = await self._verification_tokens.get_by_hash(
            token_hash=self._secret_service.hash_secret(token)
        )
        consumed = (
            record is not None
            and record.user_id == user.user_id
            and record.is_consumable_at(now)
            and await self._verification_tokens.consume_token(
                token_id=record.token_id,
                user_id=user.user_id,
                now=now,
            )
        )
        if not consumed:
            logger.warning("email_verification_failed reason=invalid_token user_id=%s", user_id)
            await self._append_event(
                user_id=user.user_id,
                event_type="email_verification_failed",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return AuthResult(outcome=AuthOutcome.VERIFICATION_FAILED)

        logger.info("email_verified user_id=%s", user_id)
        await self._append_event(
            user_id=user.user_id,
            event_type="email_verified",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        verified = await self._users.get_active_by_id(user_id=user_id)
        return AuthResult(outcome=AuthOutcome.SUCCESS, user=verified or user)

    async def resend_verification(
        self,
        *,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Mint and send a fresh verification link, at most once per cooldown."""

        user = await self._users.get_active_by_email(email=email.strip().lower())
        if user is None:
            return AuthResult(outcome=AuthOutcome.NOT_FOUND)
        if user.email_verified:
            return AuthResult(outcome=AuthOutcome.SUCCESS, user=user)

        latest = await self._verification_tokens.get_latest_for_user(user_id=user.user_id)
        if latest is not None and self._now() - latest.created_at < self._resend_cooldown:
            logger.info("verification_resend_rate_limited user_id=%s", user.user_id)
            return AuthResult(outcome=AuthOutcome.RATE_LIMITED, user=user)

        await self._send_verification(
            user=user,
            replace_pending=True,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return AuthResult(outcome=AuthOutcome.SUCCESS, user=user)

    async def _issue_session(self, *, user: UserRecord, ip_address: str | None) -> IssuedSession:
        """Mint a session and persist its refresh token row directly."""

        session, refresh_input = self._mint_session(user=user, ip_address=ip_address)
        await self._refresh_tokens.create_token(refresh_input)
        return session

    def _mint_session(
        self,
        *,
        user: UserRecord,
        ip_address: str | None,
    ) -> tuple[IssuedSession, RefreshTokenCreateInput]:
        """Build an access/refresh pair and the row describing its refresh half."""

        access = self._access_tokens.issue(user)
        access_token_id = (
            self._access_tokens.parse_token_id(access.token) or access.token_id or str(uuid4())
        )

        refresh_secret = self._secret_service.generate_secret()
        created_at = self._now()
        refresh_input = RefreshTokenCreateInput(
            token_id=uuid4(),
            user_id=user.user_id,
            token_hash=self._secret_service.hash_secret(refresh_secret),
            access_token_id=access_token_id,
            created_at=created_at,
            created_by_ip=ip_address,
            expires_at=created_at + self._refresh_token_ttl,
        )
        session = IssuedSession(
            access_token=access.token,
            access_token_expires_at=access.expires_at,
            refresh_token=refresh_secret,
            refresh_token_expires_at=refresh_input.expires_at,
            user=user,
        )
        return session, refresh_input

    async def _send_verification(
        self,
        *,
        user: UserRecord,
        replace_pending: bool,
        ip_address: str | None,
        user_agent: str | None,
    ) -> bool:
        """Persist a verification token digest and dispatch its link, best effort."""

        secret = self._secret_service.generate_secret()
        created_at = self._now()
        payload = EmailVerificationTokenCreateInput(
            token_id=uuid4(),
            user_id=user.user_id,
            token_hash=self._secret_service.hash_secret(secret),
            created_at=created_at,
            expires_at=created_at + self._verification_token_ttl,
        )
        if replace_pending:
            await self._verification_tokens.replace_pending_tokens(payload)
        else:
            await self._verification_tokens.create_token(payload)

        verification_url = build_verification_url(
            base_url=self._verification_base_url,
            user_id=user.user_id,
            secret=secret,
        )
        try:
            await self._notifier.send_verification_email(
                to_email=user.email,
                display_name=user.display_name,
                verification_url=verification_url,
            )
        except NotificationDeliveryError as error:
            logger.error(
                "verification_email_delivery_failed user_id=%s error=%s",
                user.user_id,
                error,
            )
            await self._append_event(
                user_id=user.user_id,
                event_type="verification_email_failed",
                ip_address=ip_address,
                user_agent=user_agent,
                payload={"token_id": str(payload.token_id)},
            )
            return False

        await self._append_event(
            user_id=user.user_id,
            event_type="verification_email_sent",
            ip_address=ip_address,
            user_agent=user_agent,
            payload={"token_id": str(payload.token_id)},
        )
        return True

    async def _handle_reuse(
        self,
        *,
        record: RefreshTokenRecord,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthResult:
        """Burn every outstanding token of the owner of a replayed refresh token."""

        revoked = await self._refresh_tokens.revoke_active_tokens_for_user(
            user_id=record.user_id,
            now=self._now(),
            ip_address=ip_address,
        )
        logger.error(
            "refresh_token_reuse_detected user_id=%s token_id=%s ip=%s revoked=%s",
            record.user_id,
            record.token_id,
            ip_address,
            revoked,
        )
        await self._append_event(
            user_id=record.user_id,
            event_type="refresh_token_reuse_detected",
            ip_address=ip_address,
            user_agent=user_agent,
            payload={"token_id": str(record.token_id), "revoked_count": revoked},
        )
        return AuthResult(outcome=AuthOutcome.INVALID_TOKEN, revoked_count=revoked)

    async def _reject_refresh(
        self,
        *,
        record: RefreshTokenRecord,
        reason: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthResult:
        logger.warning(
            "refresh_rejected reason=%s user_id=%s token_id=%s ip=%s",
            reason,
            record.user_id,
            record.token_id,
            ip_address,
        )
        await self._append_event(
            user_id=record.user_id,
            event_type="refresh_failed",
            ip_address=ip_address,
            user_agent=user_agent,
            payload={"token_id": str(record.token_id), "reason": reason},
        )
        return AuthResult(outcome=AuthOutcome.INVALID_TOKEN)

    async def _reject_duplicate_email(
        self,
        *,
        email: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthResult:
        logger.info("register_rejected reason=duplicate_email ip=%s", ip_address)
        await self._append_event(
            user_id=None,
            event_type="register_rejected",
            ip_address=ip_address,
            user_agent=user_agent,
            payload={"email": email, "reason": "duplicate_email"},
        )
        return AuthResult(outcome=AuthOutcome.DUPLICATE_EMAIL)

    async def _append_event(
        self,
        *,
        user_id: UUID | None,
        event_type: str,
        ip_address: str | None,
        user_agent: str | None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        await self._auth_events.append_event(
            AuthEventCreateInput(
                user_id=user_id,
                event_type=event_type,
                ip_address=ip_address,
                user_agent=user_agent,
                payload=payload or {},
            )
        )
