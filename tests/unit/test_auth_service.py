from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse
from uuid import UUID, uuid4

import pytest

from ideaboard_auth.application.ports.auth_event_repository_port import AuthEventCreateInput
from ideaboard_auth.application.ports.email_verification_token_repository_port import (
    EmailVerificationTokenCreateInput,
    EmailVerificationTokenRecord,
)
from ideaboard_auth.application.ports.refresh_token_repository_port import (
    RefreshTokenCreateInput,
    RefreshTokenRecord,
    SessionStoreUnavailableError,
)
from ideaboard_auth.application.ports.user_repository_port import (
    DuplicateUserEmailError,
    UserCreateInput,
    UserRecord,
)
from ideaboard_auth.application.ports.verification_notifier_port import NotificationDeliveryError
from ideaboard_auth.application.services.auth_service import AuthOutcome, AuthService
from ideaboard_auth.domain.auth.token_state import RefreshTokenState
from ideaboard_auth.infrastructure.security.access_token_codec import JwtAccessTokenCodec
from ideaboard_auth.infrastructure.security.secret_service import OpaqueSecretService

SIGNING_KEY = "unit-test-signing-key-" + "x" * 42
BASE_URL = "https://ideaboard.example/auth"
STRONG_PASSWORD = "Secret123!"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


class FakeUserRepository:
    def __init__(self, *, clock: FakeClock) -> None:
        self.users: dict[UUID, UserRecord] = {}
        self.raise_duplicate_on_create = False
        self._clock = clock

    async def get_by_id(self, *, user_id: UUID) -> UserRecord | None:
        return self.users.get(user_id)

    async def get_active_by_id(self, *, user_id: UUID) -> UserRecord | None:
        user = self.users.get(user_id)
        if user is None or user.is_deleted:
            return None
        return user

    async def get_active_by_email(self, *, email: str) -> UserRecord | None:
        for user in self.users.values():
            if user.email == email and not user.is_deleted:
                return user
        return None

    async def create_user(self, payload: UserCreateInput) -> UserRecord:
        if self.raise_duplicate_on_create:
            raise DuplicateUserEmailError(payload.email)
        if await self.get_active_by_email(email=payload.email) is not None:
            raise DuplicateUserEmailError(payload.email)
        now = self._clock()
        user = UserRecord(
            user_id=uuid4(),
            display_name=payload.display_name,
            email=payload.email,
            password_hash=payload.password_hash,
            email_verified=False,
            email_verified_at=None,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        self.users[user.user_id] = user
        return user

    async def mark_deleted(self, *, user_id: UUID) -> UserRecord | None:
        user = self.users.get(user_id)
        if user is None:
            return None
        self.users[user_id] = replace(user, is_deleted=True)
        return self.users[user_id]

    def mark_verified(self, *, user_id: UUID, now: datetime) -> None:
        user = self.users[user_id]
        self.users[user_id] = replace(user, email_verified=True, email_verified_at=now)


class FakeRefreshTokenRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, RefreshTokenRecord] = {}
        self.write_count = 0
        self.fail_rotation = False
        self.lose_next_rotation = False

    async def create_token(self, payload: RefreshTokenCreateInput) -> RefreshTokenRecord:
        self.write_count += 1
        record = _refresh_record(payload)
        self.rows[record.token_id] = record
        return record

    async def get_by_hash(self, *, token_hash: str) -> RefreshTokenRecord | None:
        for row in self.rows.values():
            if row.token_hash == token_hash:
                return row
        return None

    async def list_for_user(self, *, user_id: UUID) -> list[RefreshTokenRecord]:
        rows = [row for row in self.rows.values() if row.user_id == user_id]
        return sorted(rows, key=lambda row: row.created_at)

    async def rotate_token(
        self,
        *,
        token_id: UUID,
        now: datetime,
        ip_address: str | None,
        successor: RefreshTokenCreateInput,
    ) -> RefreshTokenRecord | None:
        if self.fail_rotation:
            raise SessionStoreUnavailableError("refresh token rotation failed")
        if self.lose_next_rotation:
            # A competing request retires the row between read and write.
            self.lose_next_rotation = False
            self.rows[token_id] = replace(
                self.rows[token_id],
                used=True,
                used_at=now,
                revoked_at=now,
                revoked_by_ip="203.0.113.99",
            )

        current = self.rows[token_id]
        if current.used or current.revoked_at is not None or current.expires_at <= now:
            return None

        self.write_count += 1
        record = _refresh_record(successor)
        self.rows[record.token_id] = record
        self.rows[token_id] = replace(
            current,
            used=True,
            used_at=now,
            revoked_at=now,
            revoked_by_ip=ip_address,
            replaced_by_token_id=record.token_id,
        )
        return record

    async def revoke_token(self, *, token_id: UUID, now: datetime, ip_address: str | None) -> bool:
        current = self.rows[token_id]
        if current.revoked_at is not None:
            return False
        self.write_count += 1
        self.rows[token_id] = replace(current, revoked_at=now, revoked_by_ip=ip_address)
        return True

    async def revoke_active_tokens_for_user(
        self,
        *,
        user_id: UUID,
        now: datetime,
        ip_address: str | None,
    ) -> int:
        revoked = 0
        for token_id, row in list(self.rows.items()):
            if row.user_id == user_id and row.revoked_at is None:
                self.rows[token_id] = replace(row, revoked_at=now, revoked_by_ip=ip_address)
                revoked += 1
        self.write_count += revoked
        return revoked


class FakeVerificationTokenRepository:
    def __init__(self, *, users: FakeUserRepository) -> None:
        self.rows: dict[UUID, EmailVerificationTokenRecord] = {}
        self._users = users

    async def create_token(
        self,
        payload: EmailVerificationTokenCreateInput,
    ) -> EmailVerificationTokenRecord:
        record = EmailVerificationTokenRecord(
            token_id=payload.token_id,
            user_id=payload.user_id,
            token_hash=payload.token_hash,
            created_at=payload.created_at,
            expires_at=payload.expires_at,
            verified_at=None,
        )
        self.rows[record.token_id] = record
        return record

    async def replace_pending_tokens(
        self,
        payload: EmailVerificationTokenCreateInput,
    ) -> EmailVerificationTokenRecord:
        await self.delete_pending_for_user(user_id=payload.user_id)
        return await self.create_token(payload)

    async def get_by_hash(self, *, token_hash: str) -> EmailVerificationTokenRecord | None:
        for row in self.rows.values():
            if row.token_hash == token_hash:
                return row
        return None

    async def get_latest_for_user(self, *, user_id: UUID) -> EmailVerificationTokenRecord | None:
        rows = [row for row in self.rows.values() if row.user_id == user_id]
        if not rows:
            return None
        return max(rows, key=lambda row: row.created_at)

    async def consume_token(self, *, token_id: UUID, user_id: UUID, now: datetime) -> bool:
        row = self.rows.get(token_id)
        if row is None or row.user_id != user_id or not row.is_consumable_at(now):
            return False
        self.rows[token_id] = replace(row, verified_at=now)
        self._users.mark_verified(user_id=user_id, now=now)
        return True

    async def delete_pending_for_user(self, *, user_id: UUID) -> int:
        pending = [
            token_id
            for token_id, row in self.rows.items()
            if row.user_id == user_id and row.verified_at is None
        ]
        for token_id in pending:
            del self.rows[token_id]
        return len(pending)


class FakeAuthEventRepository:
    def __init__(self) -> None:
        self.events: list[AuthEventCreateInput] = []

    async def append_event(self, payload: AuthEventCreateInput) -> int:
        self.events.append(payload)
        return len(self.events)

    def types(self) -> list[str]:
        return [event.event_type for event in self.events]


class FakePasswordHasher:
    def hash_password(self, password: str) -> str:
        return f"hashed::{password}"

    def verify_password(self, *, password: str, password_hash: str) -> bool:
        return password_hash == f"hashed::{password}"


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.should_fail = False

    async def send_verification_email(
        self,
        *,
        to_email: str,
        display_name: str,
        verification_url: str,
    ) -> None:
        if self.should_fail:
            raise NotificationDeliveryError("smtp relay unavailable")
        self.sent.append((to_email, display_name, verification_url))

    def latest_secret(self) -> str:
        return parse_qs(urlparse(self.sent[-1][2]).query)["token"][0]


@dataclass
class Harness:
    clock: FakeClock
    users: FakeUserRepository
    refresh_tokens: FakeRefreshTokenRepository
    verification_tokens: FakeVerificationTokenRepository
    auth_events: FakeAuthEventRepository
    notifier: FakeNotifier
    secrets: OpaqueSecretService
    service: AuthService


def _refresh_record(payload: RefreshTokenCreateInput) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        token_id=payload.token_id,
        user_id=payload.user_id,
        token_hash=payload.token_hash,
        access_token_id=payload.access_token_id,
        created_at=payload.created_at,
        created_by_ip=payload.created_by_ip,
        expires_at=payload.expires_at,
        revoked_at=None,
        revoked_by_ip=None,
        replaced_by_token_id=None,
        used=False,
        used_at=None,
    )


def _harness() -> Harness:
    clock = FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC))
    users = FakeUserRepository(clock=clock)
    refresh_tokens = FakeRefreshTokenRepository()
    verification_tokens = FakeVerificationTokenRepository(users=users)
    auth_events = FakeAuthEventRepository()
    notifier = FakeNotifier()
    secrets = OpaqueSecretService()
    service = AuthService(
        users=users,
        refresh_tokens=refresh_tokens,
        verification_tokens=verification_tokens,
        auth_events=auth_events,
        password_hasher=FakePasswordHasher(),
        access_tokens=JwtAccessTokenCodec(
            signing_key=SIGNING_KEY,
            issuer="ideaboard-auth",
            audience="ideaboard-api",
            now=clock,
        ),
        secret_service=secrets,
        notifier=notifier,
        verification_base_url=BASE_URL,
        now=clock,
    )
    return Harness(
        clock=clock,
        users=users,
        refresh_tokens=refresh_tokens,
        verification_tokens=verification_tokens,
        auth_events=auth_events,
        notifier=notifier,
        secrets=secrets,
        service=service,
    )


async def _register(h: Harness, *, email: str = "alice@x.com", name: str = "Alice"):
    result = await h.service.register(
        display_name=name,
        email=email,
        password=STRONG_PASSWORD,
        ip_address="198.51.100.7",
        user_agent="pytest",
    )
    assert result.outcome is AuthOutcome.SUCCESS
    return result


async def _register_verified(h: Harness, *, email: str = "alice@x.com", name: str = "Alice"):
    registered = await _register(h, email=email, name=name)
    assert registered.user is not None
    verified = await h.service.verify_email(
        user_id=registered.user.user_id,
        token=h.notifier.latest_secret(),
    )
    assert verified.outcome is AuthOutcome.SUCCESS
    return registered


async def _login(h: Harness, *, email: str = "alice@x.com", password: str = STRONG_PASSWORD):
    return await h.service.login(
        email=email,
        password=password,
        ip_address="198.51.100.7",
        user_agent="pytest",
    )


async def _refresh(h: Harness, refresh_token: str):
    return await h.service.refresh(
        refresh_token=refresh_token,
        ip_address="198.51.100.8",
        user_agent="pytest",
    )


@pytest.mark.asyncio
async def test_alice_registers_is_blocked_until_verified_then_logs_in() -> None:
    h = _harness()

    registered = await _register(h)

    assert registered.session is not None
    assert registered.session.access_token
    assert registered.session.refresh_token
    assert registered.user is not None
    assert registered.user.email_verified is False
    assert len(h.notifier.sent) == 1

    blocked = await _login(h)
    assert blocked.outcome is AuthOutcome.EMAIL_NOT_VERIFIED
    assert blocked.session is None

    verified = await h.service.verify_email(
        user_id=registered.user.user_id,
        token=h.notifier.latest_secret(),
    )
    assert verified.outcome is AuthOutcome.SUCCESS
    assert verified.user is not None
    assert verified.user.email_verified is True

    logged_in = await _login(h)
    assert logged_in.outcome is AuthOutcome.SUCCESS
    assert logged_in.session is not None
    assert logged_in.session.refresh_token != registered.session.refresh_token
    assert h.auth_events.types() == [
        "user_registered",
        "verification_email_sent",
        "login_blocked_unverified",
        "email_verified",
        "login_success",
    ]


@pytest.mark.asyncio
async def test_register_persists_digests_only_and_renders_verification_link() -> None:
    h = _harness()

    registered = await _register(h, email="  Alice@X.com ")

    assert registered.user is not None
    assert registered.user.email == "alice@x.com"
    assert registered.session is not None
    to_email, display_name, url = h.notifier.sent[0]
    assert to_email == "alice@x.com"
    assert display_name == "Alice"
    assert url.startswith(f"{BASE_URL}/verify-email?userId={registered.user.user_id}&token=")

    (refresh_row,) = h.refresh_tokens.rows.values()
    assert refresh_row.token_hash == h.secrets.hash_secret(registered.session.refresh_token)
    assert refresh_row.token_hash != registered.session.refresh_token
    assert refresh_row.created_by_ip == "198.51.100.7"
    assert refresh_row.expires_at == h.clock() + timedelta(days=7)
    assert registered.session.refresh_token_expires_at == refresh_row.expires_at

    (verification_row,) = h.verification_tokens.rows.values()
    assert verification_row.token_hash == h.secrets.hash_secret(h.notifier.latest_secret())
    assert verification_row.expires_at == h.clock() + timedelta(hours=24)


@pytest.mark.asyncio
async def test_register_refresh_row_carries_access_token_id() -> None:
    h = _harness()

    registered = await _register(h)

    assert registered.session is not None
    (refresh_row,) = h.refresh_tokens.rows.values()
    codec = JwtAccessTokenCodec(
        signing_key=SIGNING_KEY,
        issuer="ideaboard-auth",
        audience="ideaboard-api",
    )
    assert refresh_row.access_token_id == codec.parse_token_id(registered.session.access_token)


@pytest.mark.asyncio
async def test_register_weak_password_reports_violations_without_writes() -> None:
    h = _harness()

    result = await h.service.register(
        display_name="Alice",
        email="alice@x.com",
        password="alice",
        ip_address="198.51.100.7",
        user_agent="pytest",
    )

    assert result.outcome is AuthOutcome.WEAK_CREDENTIAL
    assert result.violations == (
        "min_length",
        "uppercase",
        "number",
        "special_char",
        "contains_email",
        "contains_name",
    )
    assert h.users.users == {}
    assert h.refresh_tokens.rows == {}
    assert h.notifier.sent == []


@pytest.mark.asyncio
async def test_register_duplicate_email_is_rejected_and_audited() -> None:
    h = _harness()
    await _register(h)

    result = await h.service.register(
        display_name="Other Alice",
        email="ALICE@x.com",
        password=STRONG_PASSWORD,
        ip_address="198.51.100.9",
        user_agent="pytest",
    )

    assert result.outcome is AuthOutcome.DUPLICATE_EMAIL
    assert len(h.users.users) == 1
    event = h.auth_events.events[-1]
    assert event.event_type == "register_rejected"
    assert event.user_id is None
    assert event.payload == {"email": "alice@x.com", "reason": "duplicate_email"}


@pytest.mark.asyncio
async def test_register_taken_email_wins_over_weak_password() -> None:
    h = _harness()
    await _register(h)
    sent_before = len(h.notifier.sent)

    result = await h.service.register(
        display_name="Alice",
        email="alice@x.com",
        password="weak",
        ip_address="198.51.100.9",
        user_agent="pytest",
    )

    assert result.outcome is AuthOutcome.DUPLICATE_EMAIL
    assert result.violations == ()
    assert len(h.users.users) == 1
    assert len(h.notifier.sent) == sent_before
    assert h.auth_events.events[-1].event_type == "register_rejected"


@pytest.mark.asyncio
async def test_register_unique_index_race_maps_to_duplicate_email() -> None:
    h = _harness()
    h.users.raise_duplicate_on_create = True

    result = await h.service.register(
        display_name="Alice",
        email="alice@x.com",
        password=STRONG_PASSWORD,
        ip_address=None,
        user_agent=None,
    )

    assert result.outcome is AuthOutcome.DUPLICATE_EMAIL
    assert h.refresh_tokens.rows == {}


@pytest.mark.asyncio
async def test_register_succeeds_when_verification_delivery_fails() -> None:
    h = _harness()
    h.notifier.should_fail = True

    result = await _register(h)

    assert result.session is not None
    assert len(h.verification_tokens.rows) == 1
    assert "verification_email_failed" in h.auth_events.types()
    assert "verification_email_sent" not in h.auth_events.types()


@pytest.mark.asyncio
async def test_register_rejects_blank_display_name() -> None:
    h = _harness()

    with pytest.raises(ValueError, match="display name"):
        await h.service.register(
            display_name="   ",
            email="alice@x.com",
            password=STRONG_PASSWORD,
            ip_address=None,
            user_agent=None,
        )


@pytest.mark.asyncio
async def test_register_allows_email_of_soft_deleted_user() -> None:
    h = _harness()
    first = await _register(h)
    assert first.user is not None
    await h.users.mark_deleted(user_id=first.user.user_id)

    second = await _register(h)

    assert second.user is not None
    assert second.user.user_id != first.user.user_id


@pytest.mark.asyncio
async def test_login_unknown_email_logs_invalid_credentials() -> None:
    h = _harness()

    result = await _login(h, email="missing@x.com")

    assert result.outcome is AuthOutcome.INVALID_CREDENTIALS
    event = h.auth_events.events[-1]
    assert event.event_type == "login_failed"
    assert event.user_id is None
    assert event.payload == {"email": "missing@x.com", "reason": "invalid_credentials"}


@pytest.mark.asyncio
async def test_login_wrong_password_for_verified_user_is_invalid_credentials() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.user is not None

    result = await _login(h, password="Wrong123!")

    assert result.outcome is AuthOutcome.INVALID_CREDENTIALS
    assert result.session is None
    event = h.auth_events.events[-1]
    assert event.event_type == "login_failed"
    assert event.user_id == registered.user.user_id


@pytest.mark.asyncio
async def test_login_deleted_user_is_invalid_credentials() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.user is not None
    await h.users.mark_deleted(user_id=registered.user.user_id)

    result = await _login(h)

    assert result.outcome is AuthOutcome.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_refresh_rotates_and_links_predecessor_to_successor() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.session is not None

    result = await _refresh(h, registered.session.refresh_token)

    assert result.outcome is AuthOutcome.SUCCESS
    assert result.session is not None
    assert result.session.refresh_token != registered.session.refresh_token
    old = await h.refresh_tokens.get_by_hash(
        token_hash=h.secrets.hash_secret(registered.session.refresh_token)
    )
    new = await h.refresh_tokens.get_by_hash(
        token_hash=h.secrets.hash_secret(result.session.refresh_token)
    )
    assert old is not None and new is not None
    assert old.used is True
    assert old.used_at == h.clock()
    assert old.revoked_at == h.clock()
    assert old.revoked_by_ip == "198.51.100.8"
    assert old.replaced_by_token_id == new.token_id
    assert new.state_at(h.clock()) is RefreshTokenState.ACTIVE
    assert new.created_by_ip == "198.51.100.8"
    assert h.auth_events.events[-1].event_type == "refresh_rotated"


@pytest.mark.asyncio
async def test_refresh_token_is_single_use_and_reuse_burns_every_session() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.session is not None and registered.user is not None
    other_session = await _login(h)
    assert other_session.session is not None

    first = await _refresh(h, registered.session.refresh_token)
    second = await _refresh(h, registered.session.refresh_token)

    assert first.outcome is AuthOutcome.SUCCESS
    assert second.outcome is AuthOutcome.INVALID_TOKEN
    assert second.revoked_count == 2
    assert h.auth_events.events[-1].event_type == "refresh_token_reuse_detected"

    third = await _refresh(h, other_session.session.refresh_token)
    assert third.outcome is AuthOutcome.INVALID_TOKEN
    assert first.session is not None
    successor = await _refresh(h, first.session.refresh_token)
    assert successor.outcome is AuthOutcome.INVALID_TOKEN

    rows = await h.refresh_tokens.list_for_user(user_id=registered.user.user_id)
    assert all(row.revoked_at is not None for row in rows)


@pytest.mark.asyncio
async def test_refresh_unknown_secret_writes_nothing() -> None:
    h = _harness()
    await _register_verified(h)
    writes_before = h.refresh_tokens.write_count
    rows_before = dict(h.refresh_tokens.rows)
    events_before = list(h.auth_events.events)

    result = await _refresh(h, h.secrets.generate_secret())

    assert result.outcome is AuthOutcome.INVALID_TOKEN
    assert h.refresh_tokens.write_count == writes_before
    assert h.refresh_tokens.rows == rows_before
    assert h.auth_events.events == events_before


@pytest.mark.asyncio
async def test_refresh_token_expiring_exactly_now_is_invalid() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.session is not None
    h.clock.advance(timedelta(days=7))

    result = await _refresh(h, registered.session.refresh_token)

    assert result.outcome is AuthOutcome.INVALID_TOKEN
    row = await h.refresh_tokens.get_by_hash(
        token_hash=h.secrets.hash_secret(registered.session.refresh_token)
    )
    assert row is not None
    assert row.expires_at == h.clock()
    assert row.used is False
    assert h.auth_events.events[-1].payload["reason"] == "expired"


@pytest.mark.asyncio
async def test_refresh_token_one_second_before_expiry_rotates() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.session is not None
    h.clock.advance(timedelta(days=7) - timedelta(seconds=1))

    result = await _refresh(h, registered.session.refresh_token)

    assert result.outcome is AuthOutcome.SUCCESS


@pytest.mark.asyncio
async def test_refresh_revoked_token_fails_without_family_revocation() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.session is not None
    other = await _login(h)
    assert other.session is not None
    await h.service.logout(refresh_token=registered.session.refresh_token, ip_address=None)

    result = await _refresh(h, registered.session.refresh_token)

    assert result.outcome is AuthOutcome.INVALID_TOKEN
    assert result.revoked_count == 0
    still_valid = await _refresh(h, other.session.refresh_token)
    assert still_valid.outcome is AuthOutcome.SUCCESS


@pytest.mark.asyncio
async def test_refresh_for_unverified_user_is_invalid_token() -> None:
    h = _harness()
    registered = await _register(h)
    assert registered.session is not None

    result = await _refresh(h, registered.session.refresh_token)

    assert result.outcome is AuthOutcome.INVALID_TOKEN
    assert h.auth_events.events[-1].payload["reason"] == "inactive_user"


@pytest.mark.asyncio
async def test_refresh_store_failure_propagates_and_keeps_token_redeemable() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.session is not None
    h.refresh_tokens.fail_rotation = True

    with pytest.raises(SessionStoreUnavailableError):
        await _refresh(h, registered.session.refresh_token)

    h.refresh_tokens.fail_rotation = False
    retried = await _refresh(h, registered.session.refresh_token)
    assert retried.outcome is AuthOutcome.SUCCESS


@pytest.mark.asyncio
async def test_refresh_losing_concurrent_rotation_is_treated_as_reuse() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.session is not None and registered.user is not None
    h.refresh_tokens.lose_next_rotation = True

    result = await _refresh(h, registered.session.refresh_token)

    assert result.outcome is AuthOutcome.INVALID_TOKEN
    assert "refresh_token_reuse_detected" in h.auth_events.types()
    rows = await h.refresh_tokens.list_for_user(user_id=registered.user.user_id)
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_logout_twice_keeps_first_revocation_timestamp() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.session is not None

    first = await h.service.logout(
        refresh_token=registered.session.refresh_token,
        ip_address="198.51.100.7",
    )
    first_revoked_at = h.clock()
    h.clock.advance(timedelta(minutes=5))
    second = await h.service.logout(
        refresh_token=registered.session.refresh_token,
        ip_address="198.51.100.8",
    )

    assert first.outcome is AuthOutcome.SUCCESS
    assert second.outcome is AuthOutcome.SUCCESS
    row = await h.refresh_tokens.get_by_hash(
        token_hash=h.secrets.hash_secret(registered.session.refresh_token)
    )
    assert row is not None
    assert row.revoked_at == first_revoked_at
    assert row.revoked_by_ip == "198.51.100.7"
    assert h.auth_events.types().count("logout") == 1


@pytest.mark.asyncio
async def test_logout_unknown_secret_is_invalid_token() -> None:
    h = _harness()

    result = await h.service.logout(refresh_token="not-a-real-token", ip_address=None)

    assert result.outcome is AuthOutcome.INVALID_TOKEN


@pytest.mark.asyncio
async def test_revoke_all_revokes_every_active_token_of_user() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.user is not None
    await _login(h)
    await _login(h)

    result = await h.service.revoke_all(user_id=registered.user.user_id, ip_address="198.51.100.7")

    assert result.outcome is AuthOutcome.SUCCESS
    assert result.revoked_count == 3
    again = await h.service.revoke_all(user_id=registered.user.user_id, ip_address=None)
    assert again.revoked_count == 0


@pytest.mark.asyncio
async def test_revoke_all_for_unknown_user_is_not_found() -> None:
    h = _harness()

    result = await h.service.revoke_all(user_id=uuid4(), ip_address=None)

    assert result.outcome is AuthOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_verify_is_idempotent_once_user_is_verified() -> None:
    h = _harness()
    registered = await _register_verified(h)
    assert registered.user is not None

    result = await h.service.verify_email(user_id=registered.user.user_id, token="anything")

    assert result.outcome is AuthOutcome.SUCCESS
    assert h.auth_events.types().count("email_verified") == 1


@pytest.mark.asyncio
async def test_verify_rejects_wrong_token_and_keeps_user_unverified() -> None:
    h = _harness()
    registered = await _register(h)
    assert registered.user is not None

    result = await h.service.verify_email(user_id=registered.user.user_id, token="wrong")

    assert result.outcome is AuthOutcome.VERIFICATION_FAILED
    user = await h.users.get_by_id(user_id=registered.user.user_id)
    assert user is not None and user.email_verified is False
    assert h.auth_events.events[-1].event_type == "email_verification_failed"


@pytest.mark.asyncio
async def test_verify_rejects_expired_token() -> None:
    h = _harness()
    registered = await _register(h)
    assert registered.user is not None
    h.clock.advance(timedelta(hours=24))

    result = await h.service.verify_email(
        user_id=registered.user.user_id,
        token=h.notifier.latest_secret(),
    )

    assert result.outcome is AuthOutcome.VERIFICATION_FAILED


@pytest.mark.asyncio
async def test_verify_rejects_token_issued_to_another_user() -> None:
    h = _harness()
    await _register(h)
    alice_secret = h.notifier.latest_secret()
    bob = await _register(h, email="bob@x.com", name="Bob")
    assert bob.user is not None

    result = await h.service.verify_email(user_id=bob.user.user_id, token=alice_secret)

    assert result.outcome is AuthOutcome.VERIFICATION_FAILED


@pytest.mark.asyncio
async def test_verify_unknown_user_fails() -> None:
    h = _harness()

    result = await h.service.verify_email(user_id=uuid4(), token="anything")

    assert result.outcome is AuthOutcome.VERIFICATION_FAILED


@pytest.mark.asyncio
async def test_resend_verification_is_rate_limited_for_two_minutes() -> None:
    h = _harness()
    await _register(h)
    h.clock.advance(timedelta(minutes=2))

    first = await h.service.resend_verification(email="alice@x.com")
    h.clock.advance(timedelta(minutes=1))
    second = await h.service.resend_verification(email="alice@x.com")
    h.clock.advance(timedelta(minutes=1, seconds=1))
    third = await h.service.resend_verification(email="alice@x.com")

    assert first.outcome is AuthOutcome.SUCCESS
    assert second.outcome is AuthOutcome.RATE_LIMITED
    assert third.outcome is AuthOutcome.SUCCESS
    assert len(h.notifier.sent) == 3


@pytest.mark.asyncio
async def test_resend_verification_right_after_registration_is_rate_limited() -> None:
    h = _harness()
    await _register(h)
    h.clock.advance(timedelta(seconds=30))

    result = await h.service.resend_verification(email="alice@x.com")

    assert result.outcome is AuthOutcome.RATE_LIMITED
    assert len(h.notifier.sent) == 1


@pytest.mark.asyncio
async def test_resend_verification_supersedes_pending_link() -> None:
    h = _harness()
    registered = await _register(h)
    assert registered.user is not None
    original_secret = h.notifier.latest_secret()
    h.clock.advance(timedelta(minutes=3))

    await h.service.resend_verification(email="alice@x.com")
    stale = await h.service.verify_email(user_id=registered.user.user_id, token=original_secret)
    fresh = await h.service.verify_email(
        user_id=registered.user.user_id,
        token=h.notifier.latest_secret(),
    )

    assert len(h.verification_tokens.rows) == 1
    assert stale.outcome is AuthOutcome.VERIFICATION_FAILED
    assert fresh.outcome is AuthOutcome.SUCCESS


@pytest.mark.asyncio
async def test_resend_verification_unknown_and_verified_users() -> None:
    h = _harness()
    missing = await h.service.resend_verification(email="missing@x.com")
    await _register_verified(h)
    h.clock.advance(timedelta(minutes=10))
    verified = await h.service.resend_verification(email="alice@x.com")

    assert missing.outcome is AuthOutcome.NOT_FOUND
    assert verified.outcome is AuthOutcome.SUCCESS
    assert len(h.notifier.sent) == 1
