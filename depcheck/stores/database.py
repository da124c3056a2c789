"""Engine and session management for the local knowledge base."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import StoreError
from ..logging import get_logger
from .schema import Base

_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


class Database:
    """Owns the SQLAlchemy engine and hands out units of work.

    Write transactions are serialized with an in-process lock for every
    dialect: SQLite allows a single writer, and the catalog and vulnerability
    upserts check for an existing row before inserting on a unique column.
    Readers open independent sessions and see committed data only.
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        self.logger = get_logger("stores.database")
        self._is_sqlite = url.startswith("sqlite")
        self._write_lock = threading.RLock()
        self.engine = self._create_engine(url, echo=echo)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _create_engine(self, url: str, *, echo: bool) -> Engine:
        kwargs: dict[str, Any] = {"echo": echo}
        if self._is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
            if url in _MEMORY_URLS:
                kwargs["poolclass"] = StaticPool
            else:
                _ensure_parent_directory(url)
        engine = create_engine(url, **kwargs)
        if self._is_sqlite:
            event.listen(engine, "connect", _configure_sqlite)
        return engine

    def create_schema(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to initialise database schema: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session committed on success and rolled back on any error."""
        self._write_lock.acquire()
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Database write failed: {exc}") from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
            self._write_lock.release()

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
        except SQLAlchemyError as exc:
            raise StoreError(f"Database read failed: {exc}") from exc
        finally:
            session.close()

    @contextmanager
    def scope(self, session: Session | None = None) -> Iterator[Session]:
        """Reuse ``session`` when the caller owns one, otherwise open a transaction."""
        if session is not None:
            yield session
            return
        with self.transaction() as own:
            yield own

    def dispose(self) -> None:
        self.engine.dispose()


def _configure_sqlite(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _ensure_parent_directory(url: str) -> None:
    prefix = "sqlite:///"
    if not url.startswith(prefix):
        return
    path = Path(url[len(prefix):])
    if str(path) and not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


def open_database(url: str, *, create: bool = True) -> Database:
    database = Database(url)
    if create:
        database.create_schema()
    return database


__all__ = ["Database", "open_database"]
