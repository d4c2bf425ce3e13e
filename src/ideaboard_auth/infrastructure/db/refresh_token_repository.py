"""SQLAlchemy adapter for refresh token persistence and rotation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ideaboard_auth.application.ports.refresh_token_repository_port import (
    RefreshTokenCreateInput,
    RefreshTokenRecord,
    RefreshTokenRepositoryPort,
    SessionStoreUnavailableError,
)
from ideaboard_auth.infrastructure.db.metadata import refresh_tokens
from ideaboard_auth.infrastructure.db.row_values import as_optional_utc, as_utc, as_uuid


class _RotationLostError(Exception):
    """Signals that the compare-and-set matched no row and the unit must roll back."""


class SqlAlchemyRefreshTokenRepository(RefreshTokenRepositoryPort):
    """Refresh token repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_token(self, payload: RefreshTokenCreateInput) -> RefreshTokenRecord:
        """Persist a refresh token digest row and return it."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(_insert_statement(payload))
                await session.commit()
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("refresh token insert failed") from error

        return _to_refresh_token_record(result.mappings().one())

    async def get_by_hash(self, *, token_hash: str) -> RefreshTokenRecord | None:
        """Return token row by digest regardless of state."""

        statement = sa.select(*refresh_tokens.c).where(
            refresh_tokens.c.token_hash == token_hash,
        ).limit(1)

        async with self._session_factory() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_refresh_token_record(row)

    async def list_for_user(self, *, user_id: UUID) -> list[RefreshTokenRecord]:
        """Return every token row of one user ordered by creation time."""

        statement = (
            sa.select(*refresh_tokens.c)
            .where(refresh_tokens.c.user_id == user_id)
            .order_by(refresh_tokens.c.created_at.asc(), refresh_tokens.c.id.asc())
        )

        async with self._session_factory() as session:
            result = await session.execute(statement)

        return [_to_refresh_token_record(row) for row in result.mappings().all()]

    async def rotate_token(
        self,
        *,
        token_id: UUID,
        now: datetime,
        ip_address: str | None,
        successor: RefreshTokenCreateInput,
    ) -> RefreshTokenRecord | None:
        """Insert the successor and retire the presented row in one transaction."""

        # The successor goes in first so the replaced_by reference is valid
        # when the retiring update runs.
        retire = (
            sa.update(refresh_tokens)
            .where(
                refresh_tokens.c.id == token_id,
                refresh_tokens.c.used == sa.false(),
                refresh_tokens.c.revoked_at.is_(None),
                refresh_tokens.c.expires_at > now,
            )
            .values(
                used=True,
                used_at=now,
                revoked_at=now,
                revoked_by_ip=ip_address,
                replaced_by_token_id=successor.token_id,
            )
        )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    inserted = await session.execute(_insert_statement(successor))
                    successor_row = inserted.mappings().one()
                    result = cast(CursorResult[Any], await session.execute(retire))
                    if (result.rowcount or 0) != 1:
                        raise _RotationLostError()
        except _RotationLostError:
            return None
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("refresh token rotation failed") from error

        return _to_refresh_token_record(successor_row)

    async def revoke_token(
        self,
        *,
        token_id: UUID,
        now: datetime,
        ip_address: str | None,
    ) -> bool:
        """Revoke one row unless already revoked; the first revocation stamp wins."""

        statement = (
            sa.update(refresh_tokens)
            .where(
                refresh_tokens.c.id == token_id,
                refresh_tokens.c.revoked_at.is_(None),
            )
            .values(revoked_at=now, revoked_by_ip=ip_address)
        )

        try:
            async with self._session_factory() as session:
                result = cast(CursorResult[Any], await session.execute(statement))
                await session.commit()
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("refresh token revocation failed") from error

        return bool(result.rowcount)

    async def revoke_active_tokens_for_user(
        self,
        *,
        user_id: UUID,
        now: datetime,
        ip_address: str | None,
    ) -> int:
        """Revoke all currently non-revoked tokens for one user in one statement."""

        statement = (
            sa.update(refresh_tokens)
            .where(
                refresh_tokens.c.user_id == user_id,
                refresh_tokens.c.revoked_at.is_(None),
            )
            .values(revoked_at=now, revoked_by_ip=ip_address)
        )

        try:
            async with self._session_factory() as session:
                result = cast(CursorResult[Any], await session.execute(statement))
                await session.commit()
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("refresh token revocation failed") from error

        return int(result.rowcount or 0)


def _insert_statement(payload: RefreshTokenCreateInput) -> sa.Insert:
    return sa.insert(refresh_tokens).values(
        id=payload.token_id,
        token_hash=payload.token_hash,
        access_token_id=payload.access_token_id,
        user_id=payload.user_id,
        created_at=payload.created_at,
        created_by_ip=payload.created_by_ip,
        expires_at=payload.expires_at,
        used=False,
    ).returning(*refresh_tokens.c)


def _to_refresh_token_record(row: sa.RowMapping) -> RefreshTokenRecord:
    raw_replaced_by = row["replaced_by_token_id"]
    return RefreshTokenRecord(
        token_id=as_uuid(row["id"]),
        user_id=as_uuid(row["user_id"]),
        token_hash=cast(str, row["token_hash"]),
        access_token_id=cast(str, row["access_token_id"]),
        created_at=as_utc(cast(datetime, row["created_at"])),
        created_by_ip=cast(str | None, row["created_by_ip"]),
        expires_at=as_utc(cast(datetime, row["expires_at"])),
        revoked_at=as_optional_utc(cast(datetime | None, row["revoked_at"])),
        revoked_by_ip=cast(str | None, row["revoked_by_ip"]),
        replaced_by_token_id=None if raw_replaced_by is None else as_uuid(raw_replaced_by),
        used=bool(row["used"]),
        used_at=as_optional_utc(cast(datetime | None, row["used_at"])),
    )
