"""
Unit tests for engine creation and session handling.
"""

import pytest
from sqlalchemy import inspect

from src.storage.database import create_db_engine, create_session_factory, init_db, session_scope
from src.storage.models import EmailAccount


class TestDatabaseSetup:
    """Engine and schema initialization."""

    def test_sqlite_parent_directory_is_created(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "emails.db"

        engine = create_db_engine(f"sqlite:///{db_path}")
        init_db(engine)

        assert db_path.parent.is_dir()
        assert {"emails", "email_accounts"} <= set(inspect(engine).get_table_names())
        engine.dispose()

    def test_database_url_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'env.db'}")

        engine = create_db_engine()

        assert engine.url.database.endswith("env.db")
        engine.dispose()


class TestSessionScope:
    """Transactional session context."""

    @pytest.fixture
    def session_factory(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'scope.db'}")
        init_db(engine)
        yield create_session_factory(engine)
        engine.dispose()

    def test_commit_on_success(self, session_factory):
        with session_scope(session_factory) as session:
            session.add(EmailAccount(owner_user_id="user-1", email_address="a@example.com", categories=[]))

        with session_scope(session_factory) as session:
            assert session.query(EmailAccount).count() == 1

    def test_rollback_on_error(self, session_factory):
        with pytest.raises(ValueError):
            with session_scope(session_factory) as session:
                session.add(EmailAccount(owner_user_id="user-1", email_address="a@example.com", categories=[]))
                session.flush()
                raise ValueError("abort")

        with session_scope(session_factory) as session:
            assert session.query(EmailAccount).count() == 0
