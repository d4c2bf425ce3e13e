"""SQLAlchemy adapter for append-only auth audit events."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ideaboard_auth.application.ports.auth_event_repository_port import (
    AuthEventCreateInput,
    AuthEventRepositoryPort,
)
from ideaboard_auth.application.ports.refresh_token_repository_port import (
    SessionStoreUnavailableError,
)
from ideaboard_auth.infrastructure.db.metadata import auth_events


class SqlAlchemyAuthEventRepository(AuthEventRepositoryPort):
    """Auth event repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append_event(self, payload: AuthEventCreateInput) -> int:
        """Insert one audit row and return its numeric id."""

        statement = sa.insert(auth_events).values(
            user_id=payload.user_id,
            event_type=payload.event_type,
            ip_address=payload.ip_address,
            user_agent=payload.user_agent,
            payload=dict(payload.payload),
        ).returning(auth_events.c.id)

        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                await session.commit()
        except SQLAlchemyError as error:
            raise SessionStoreUnavailableError("auth event insert failed") from error

        return int(result.scalar_one())
