"""
core/db.py -- Shared SQLAlchemy engine and transaction scope for all stores.

Stores (auth/store.py, worlds/store.py) use SQLAlchemy Core, not the ORM: the
dataclasses in auth/models.py and worlds/models.py stay the domain truth and
the _row_to_* mappers translate rows into them.

Transactions:
  A store method on its own opens a connection, runs its statement, and
  commits -- one statement, one transaction. Services that must apply several
  writes as a unit (register: insert user + replace verification token + send
  email) wrap them in `with db.transaction():`. While that block is open on the
  current thread/task, every store call made through the same Database joins
  the open transaction instead of committing on its own. Leaving the block
  commits; an exception rolls everything back.

  The active connection is tracked in a ContextVar, so concurrent requests
  (each in its own worker thread) never see each other's transaction.

Usage:
    db = Database()                                # SQLite default
    db = Database("postgresql://user:pw@host/db")  # PostgreSQL
    with db.transaction():
        users.create_user(user)
        tokens.save(token)
    db.close()

Layer rule: core/ is the kernel. No imports from api/, auth/, worlds/, notify/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import MetaData, create_engine, event, text
from sqlalchemy.engine import Connection, Engine

from core.config import get_settings

# Every store registers its tables here so foreign keys resolve across packages.
metadata = MetaData()

_active: ContextVar[Optional[tuple["Database", Connection]]] = ContextVar("lorekeeper_active_tx", default=None)


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys for every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Database:
    """Owns the engine and the per-context transaction scope."""

    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

    def _current(self) -> Optional[Connection]:
        active = _active.get()
        if active is not None and active[0] is self:
            return active[1]
        return None

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Yield a connection: the open transaction's if any, else a fresh auto-committing one."""
        conn = self._current()
        if conn is not None:
            yield conn
            return
        with self.engine.connect() as conn:
            yield conn
            conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run the block in one transaction. Nested calls join the outer one."""
        conn = self._current()
        if conn is not None:
            yield conn
            return
        with self.engine.begin() as conn:
            token = _active.set((self, conn))
            try:
                yield conn
            finally:
                _active.reset(token)

    def ping(self) -> bool:
        """Return True if a trivial query succeeds. Used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
