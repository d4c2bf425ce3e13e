"""SQLAlchemy adapter for email verification token persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ideaboard_auth.application.ports.email_verification_token_repository_port import (
    EmailVerificationTokenCreateInput,
    EmailVerificationTokenRecord,
    EmailVerificationTokenRepositoryPort,
)
from ideaboard_auth.application.ports.refresh_token_repository_port import (
    SessionStoreUnavailableError,
)
from ideaboard_auth.infrastructure.db.metadata import email_verification_tokens, users
from ideaboard_auth.infrastructure.db.row_values import as_optional_utc, as_utc, as_uuid


class _TokenAlreadyConsumedError(Exception):
    """Signals that the guarded update matched no row and the unit must roll back."""


class SqlAlchemyEmailVerificationTokenRepository(EmailVerificationTokenRepositoryPort):
    """Verification token repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_token(
        self,
        payload: EmailVerificationTokenCreateInput,
    ) -> EmailVerificationTokenRecord:
        """Persist one verification token digest row."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(_insert_statement(payload))
                await session.commit()
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("verification token insert failed") from error

        return _to_verification_token_record(result.mappings().one())

    async def replace_pending_tokens(
        self,
        payload: EmailVerificationTokenCreateInput,
    ) -> EmailVerificationTokenRecord:
        """Drop the user's unverified rows and insert `payload` atomically."""

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(_delete_pending_statement(payload.user_id))
                    result = await session.execute(_insert_statement(payload))
                    row = result.mappings().one()
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("verification token replacement failed") from error

        return _to_verification_token_record(row)

    async def get_by_hash(self, *, token_hash: str) -> EmailVerificationTokenRecord | None:
        """Return token row by digest regardless of state."""

        statement = sa.select(*email_verification_tokens.c).where(
            email_verification_tokens.c.token_hash == token_hash,
        ).limit(1)

        async with self._session_factory() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_verification_token_record(row)

    async def get_latest_for_user(self, *, user_id: UUID) -> EmailVerificationTokenRecord | None:
        """Return the most recently created row of one user."""

        statement = (
            sa.select(*email_verification_tokens.c)
            .where(email_verification_tokens.c.user_id == user_id)
            .order_by(email_verification_tokens.c.created_at.desc())
            .limit(1)
        )

        async with self._session_factory() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_verification_token_record(row)

    async def consume_token(self, *, token_id: UUID, user_id: UUID, now: datetime) -> bool:
        """Stamp token verified and mark its owner verified in one transaction."""

        stamp_token = (
            sa.update(email_verification_tokens)
            .where(
                email_verification_tokens.c.id == token_id,
                email_verification_tokens.c.user_id == user_id,
                email_verification_tokens.c.verified_at.is_(None),
                email_verification_tokens.c.expires_at > now,
            )
            .values(verified_at=now)
        )
        verify_user = (
            sa.update(users)
            .where(users.c.id == user_id)
            .values(email_verified=True, email_verified_at=now, updated_at=now)
        )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = cast(CursorResult[Any], await session.execute(stamp_token))
                    if (result.rowcount or 0) != 1:
                        raise _TokenAlreadyConsumedError()
                    await session.execute(verify_user)
        except _TokenAlreadyConsumedError:
            return False
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("email verification write failed") from error

        return True

    async def delete_pending_for_user(self, *, user_id: UUID) -> int:
        """Delete unverified rows of one user and return deleted count."""

        try:
            async with self._session_factory() as session:
                result = cast(
                    CursorResult[Any],
                    await session.execute(_delete_pending_statement(user_id)),
                )
                await session.commit()
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("verification token cleanup failed") from error

        return int(result.rowcount or 0)


def _insert_statement(payload: EmailVerificationTokenCreateInput) -> sa.Insert:
    return sa.insert(email_verification_tokens).values(
        id=payload.token_id,
        token_hash=payload.token_hash,
        user_id=payload.user_id,
        created_at=payload.created_at,
        expires_at=payload.expires_at,
    ).returning(*email_verification_tokens.c)


def _delete_pending_statement(user_id: UUID) -> sa.Delete:
    return sa.delete(email_verification_tokens).where(
        email_verification_tokens.c.user_id == user_id,
        email_verification_tokens.c.verified_at.is_(None),
    )


def _to_verification_token_record(row: sa.RowMapping) -> EmailVerificationTokenRecord:
    return EmailVerificationTokenRecord(
        token_id=as_uuid(row["id"]),
        user_id=as_uuid(row["user_id"]),
        token_hash=cast(str, row["token_hash"]),
        created_at=as_utc(cast(datetime, row["created_at"])),
        expires_at=as_utc(cast(datetime, row["expires_at"])),
        verified_at=as_optional_utc(cast(datetime | None, row["verified_at"])),
    )
