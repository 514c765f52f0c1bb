# tests/conftest.py
import os

import pytest
import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker as _sessionmaker

# -----------------------------------------------------------------------------
# IMPORTANT: all ORM tables must be registered in metadata before create_all
# (FK targets like users / dealerships)
# -----------------------------------------------------------------------------
from shiftops.models.registry import Base


def _test_database_url(tmp_path) -> str:
    """
    TEST_DATABASE_URL (e.g. a throwaway Postgres) wins; otherwise a SQLite file
    per test. A file, not :memory:, because sweeps open their own sessions.
    """
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'shiftops_test.db'}"


@pytest.fixture(autouse=True)
def _reset_structlog():
    """
    cli.main() configures structlog globally and binds the current sys.stderr
    (pytest capture, closed after the test). Restore defaults for the next test.
    """
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def _sqlite_pragmas(dbapi_connection, _record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture()
def engine(tmp_path):
    eng = create_engine(_test_database_url(tmp_path), future=True)
    if eng.dialect.name == "sqlite":
        event.listen(eng, "connect", _sqlite_pragmas)

    Base.metadata.drop_all(eng)
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(eng)
        eng.dispose()


@pytest.fixture()
def session_factory(engine):
    """Same settings as shiftops.core.db.SessionLocal, bound to the test DB."""
    return _sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )


@pytest.fixture()
def db(session_factory):
    """
    Session for arranging data and asserting results.

    Sweeps run in their own sessions/transactions, so tests must db.commit()
    the arranged data and db.expire_all() before reading results back.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
