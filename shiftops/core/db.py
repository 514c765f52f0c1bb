# shiftops/core/db.py
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from shiftops.core.config import settings

engine = create_engine(settings.database_url, echo=settings.debug, future=True)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """One unit of work: commit on success, rollback on any error.

    Row locks taken inside (SELECT ... FOR UPDATE) live until the block exits.
    """
    with factory() as db:
        with db.begin():
            yield db
