"""SQLAlchemy engine and session management.

A single :class:`Database` object owns the engine and the session factory.
It is built once by each entry point (server lifespan, worker, CLI) and
handed to the code that needs it, instead of living in a module global.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recall_outreach.config import DATABASE_ECHO, DATABASE_URL
from recall_outreach.db.models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ignores ON DELETE clauses unless foreign keys are switched on."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str | None = None, *, echo: bool | None = None) -> Engine:
    """Create an engine for *url* (defaults to ``DATABASE_URL``)."""
    url = url or DATABASE_URL
    kwargs: dict = {"echo": DATABASE_ECHO if echo is None else echo}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            # One shared connection so every session sees the same in-memory DB
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, url: str | None = None, *, engine: Engine | None = None) -> None:
        self.engine = engine or build_engine(url)
        self._session_factory = sessionmaker(
            self.engine,
            expire_on_commit=False,
            autoflush=False,
        )

    def create_all(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)
        logger.info("Database schema ensured (%s)", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error.

        Usage:
            with database.session_scope() as session:
                session.add(obj)
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Database session error: %s", e)
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
