from __future__ import annotations

from pathlib import Path
from uuid import uuid4

import pytest
import sqlalchemy as sa
from alembic.config import Config
from sqlalchemy.exc import IntegrityError

from alembic import command


def _alembic_config(database_url: str) -> Config:
    alembic_config = Config("alembic.ini")
    alembic_config.set_main_option("sqlalchemy.url", database_url)
    return alembic_config


def _upgrade_head(tmp_path: Path) -> str:
    db_path = tmp_path / "auth_schema_migration.db"
    database_url = f"sqlite+pysqlite:///{db_path}"

    command.upgrade(_alembic_config(database_url), "head")
    return database_url


def _insert_user(connection: sa.Connection, *, email: str, is_deleted: bool) -> None:
    connection.execute(
        sa.text(
            "INSERT INTO users (id, display_name, email, password_hash, is_deleted) "
            "VALUES (:id, 'Alice', :email, 'hash', :is_deleted)"
        ),
        {"id": uuid4().hex, "email": email, "is_deleted": is_deleted},
    )


def test_migration_creates_required_tables(tmp_path: Path) -> None:
    database_url = _upgrade_head(tmp_path)
    engine = sa.create_engine(database_url)

    table_names = set(sa.inspect(engine).get_table_names())

    assert {"users", "auth_events", "refresh_tokens", "email_verification_tokens"} <= table_names


def test_migration_creates_required_uniques_and_indexes(tmp_path: Path) -> None:
    database_url = _upgrade_head(tmp_path)
    engine = sa.create_engine(database_url)
    inspector = sa.inspect(engine)

    refresh_uniques = {
        constraint["name"] for constraint in inspector.get_unique_constraints("refresh_tokens")
    }
    assert "uq_refresh_tokens_token_hash" in refresh_uniques

    verification_uniques = {
        constraint["name"]
        for constraint in inspector.get_unique_constraints("email_verification_tokens")
    }
    assert "uq_email_verification_tokens_token_hash" in verification_uniques

    refresh_indexes = {index["name"] for index in inspector.get_indexes("refresh_tokens")}
    assert "ix_refresh_tokens_user_id" in refresh_indexes
    assert "ix_refresh_tokens_expires_at" in refresh_indexes

    verification_indexes = {
        index["name"] for index in inspector.get_indexes("email_verification_tokens")
    }
    assert "ix_email_verification_tokens_user_id_created_at" in verification_indexes

    event_indexes = {index["name"] for index in inspector.get_indexes("auth_events")}
    assert "ix_auth_events_user_id_occurred_at" in event_indexes
    assert "ix_auth_events_event_type_occurred_at" in event_indexes

    user_indexes = {index["name"]: index for index in inspector.get_indexes("users")}
    assert user_indexes["uq_users_email_active"]["unique"]


def test_active_email_index_ignores_soft_deleted_rows(tmp_path: Path) -> None:
    database_url = _upgrade_head(tmp_path)
    engine = sa.create_engine(database_url)

    with engine.begin() as connection:
        _insert_user(connection, email="alice@x.com", is_deleted=True)
        _insert_user(connection, email="alice@x.com", is_deleted=True)
        _insert_user(connection, email="alice@x.com", is_deleted=False)

    with pytest.raises(IntegrityError):
        with engine.begin() as connection:
            _insert_user(connection, email="alice@x.com", is_deleted=False)

    with engine.connect() as connection:
        count = connection.execute(
            sa.text("SELECT COUNT(*) FROM users WHERE email = 'alice@x.com'")
        ).scalar_one()
    assert count == 3


def test_migration_downgrade_removes_auth_tables(tmp_path: Path) -> None:
    database_url = _upgrade_head(tmp_path)

    command.downgrade(_alembic_config(database_url), "base")

    table_names = set(sa.inspect(sa.create_engine(database_url)).get_table_names())
    assert "users" not in table_names
    assert "refresh_tokens" not in table_names
    assert "email_verification_tokens" not in table_names
    assert "auth_events" not in table_names
