"""SQLAlchemy adapter for principal persistence."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import cast
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ideaboard_auth.application.ports.refresh_token_repository_port import (
    SessionStoreUnavailableError,
)
from ideaboard_auth.application.ports.user_repository_port import (
    DuplicateUserEmailError,
    UserCreateInput,
    UserRecord,
    UserRepositoryPort,
)
from ideaboard_auth.infrastructure.db.metadata import users
from ideaboard_auth.infrastructure.db.row_values import as_optional_utc, as_utc, as_uuid


def _is_duplicate_email_error(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "users.email" in message or "uq_users_email_active" in message


class SqlAlchemyUserRepository(UserRepositoryPort):
    """User repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, *, user_id: UUID) -> UserRecord | None:
        """Return user by id, including deleted users."""

        return await self._fetch_one(sa.select(*users.c).where(users.c.id == user_id).limit(1))

    async def get_active_by_id(self, *, user_id: UUID) -> UserRecord | None:
        """Return non-deleted user by id or None."""

        statement = sa.select(*users.c).where(
            users.c.id == user_id,
            users.c.is_deleted == sa.false(),
        ).limit(1)
        return await self._fetch_one(statement)

    async def get_active_by_email(self, *, email: str) -> UserRecord | None:
        """Return non-deleted user by normalized email or None."""

        statement = sa.select(*users.c).where(
            users.c.email == email,
            users.c.is_deleted == sa.false(),
        ).limit(1)
        return await self._fetch_one(statement)

    async def create_user(self, payload: UserCreateInput) -> UserRecord:
        """Insert one unverified user and return the persisted row."""

        now = datetime.now(tz=UTC)
        statement = sa.insert(users).values(
            id=uuid4(),
            display_name=payload.display_name,
            email=payload.email,
            password_hash=payload.password_hash,
            email_verified=False,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        ).returning(*users.c)

        try:
            async with self._session_factory() as session:
                try:
                    result = await session.execute(statement)
                    await session.commit()
                except IntegrityError as error:
                    await session.rollback()
                    if _is_duplicate_email_error(error):
                        raise DuplicateUserEmailError(payload.email) from error
                    raise
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("user insert failed") from error

        return _to_user_record(result.mappings().one())

    async def mark_deleted(self, *, user_id: UUID) -> UserRecord | None:
        """Soft-delete one user and return the updated row, or None when missing."""

        statement = (
            sa.update(users)
            .where(users.c.id == user_id)
            .values(is_deleted=True, updated_at=datetime.now(tz=UTC))
            .returning(*users.c)
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                row = result.mappings().first()
                await session.commit()
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("user soft delete failed") from error

        if row is None:
            return None
        return _to_user_record(row)

    async def _fetch_one(self, statement: sa.Select[tuple[object, ...]]) -> UserRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_user_record(row)


def _to_user_record(row: sa.RowMapping) -> UserRecord:
    return UserRecord(
        user_id=as_uuid(row["id"]),
        display_name=cast(str, row["display_name"]),
        email=cast(str, row["email"]),
        password_hash=cast(str, row["password_hash"]),
        email_verified=bool(row["email_verified"]),
        email_verified_at=as_optional_utc(cast(datetime | None, row["email_verified_at"])),
        is_deleted=bool(row["is_deleted"]),
        created_at=as_utc(cast(datetime, row["created_at"])),
        updated_at=as_utc(cast(datetime, row["updated_at"])),
    )
