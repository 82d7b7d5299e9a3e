"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import BigInteger, Engine, create_engine, event
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from studybank.config import EconomyConfig, StudybankConfig
from studybank.database.models import Base


# ---------------------------------------------------------------------------
# SQLite compatibility
# BigInteger → INTEGER so autoincrement primary keys work.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


def _enable_savepoints(engine: Engine, begin: str = "BEGIN") -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINT / rollback behave on pysqlite."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql(begin)


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every Studybank table.

    Uses StaticPool so all threads share the same in-memory database
    (``run_db`` and the API's threadpool both cross threads).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_savepoints(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for multi-threaded tests.

    ``BEGIN IMMEDIATE`` takes the write lock up front, standing in for
    PostgreSQL row locks: concurrent units of work queue instead of
    interleaving.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _enable_savepoints(engine, "BEGIN IMMEDIATE")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


# ---------------------------------------------------------------------------
# Config & API
# ---------------------------------------------------------------------------
def make_config(**overrides) -> StudybankConfig:
    values = dict(
        community_name="Test Study Hall",
        bot_prefix="!",
        guild_id=100,
        admin_role_id=200,
        staging_channel_id=1,
        welcome_channel_id=2,
        economy=EconomyConfig(),
    )
    values.update(overrides)
    return StudybankConfig(**values)


@pytest.fixture
def test_config() -> StudybankConfig:
    return make_config(leaderboard_exclude_ids=(999,))


@pytest.fixture
def client(db_engine, test_config):
    """FastAPI TestClient wired to the in-memory database."""
    from fastapi.testclient import TestClient

    from studybank.api.deps import get_config, get_engine
    from studybank.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: test_config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
