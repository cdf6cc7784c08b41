"""
core/db.py -- The relational persistence handle shared by every store.

One Database is built at startup (api/main.py lifespan, main.py CLI) and
passed by reference into UserStore, TokenStore and SessionRevoker. There is no
module-level engine: two Database instances never share state, which is what
lets the tests run each case against its own in-memory database.

Connection pool:
  Server databases and SQLite files get a bounded QueuePool (pool_size +
  max_overflow connections, pool_timeout seconds to wait for one, connections
  recycled after pool_recycle seconds, pre-pinged before use). In-memory SQLite
  uses SQLAlchemy's per-thread pool, which takes none of those arguments.

Statement timeout:
  PostgreSQL and MySQL connections get a server-side per-statement limit of
  statement_timeout seconds (0 turns it off), so a query left running after
  its client has gone is cut off by the server. MySQL applies it to SELECT
  only, and SQLite has no equivalent.

Transactions:
  begin() is the only way stores touch the database. Called without a
  connection it opens a transaction that commits on success and rolls back on
  any exception. Called with the connection of an enclosing begin() it joins
  that transaction instead, so several store calls can commit as one unit.

Error translation:
  IntegrityError -> ConflictError, any other SQLAlchemyError -> PersistenceError.
  The original exception is chained as __cause__ for the server log.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.errors import ConflictError, PersistenceError

logger = logging.getLogger("bookadmin.db")


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journaling and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are per-connection and are not inherited by new
    connections from the pool, so this runs on each connect event.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _connect_args(db_url: str, statement_timeout: int) -> dict:
    """Return the DBAPI connect() arguments for this backend."""
    backend = make_url(db_url).get_backend_name()
    if backend == "sqlite":
        return {"check_same_thread": False}
    if statement_timeout <= 0:
        return {}
    ms = statement_timeout * 1000
    if backend == "postgresql":
        return {"options": f"-c statement_timeout={ms}"}
    if backend in ("mysql", "mariadb"):
        return {"init_command": f"SET SESSION max_execution_time={ms}"}
    return {}


def _is_memory_sqlite(db_url: str) -> bool:
    url = make_url(db_url)
    if url.get_backend_name() != "sqlite":
        return False
    return url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"


class Database:
    """Owns the SQLAlchemy engine and its connection pool.

    Usage:
        db = Database("sqlite:///bookadmin.db")
        with db.begin() as conn:
            conn.execute(...)
        db.close()
    """

    def __init__(
        self,
        db_url: str,
        pool_size: int = 5,
        max_overflow: int = 0,
        pool_timeout: int = 30,
        pool_recycle: int = 300,
        statement_timeout: int = 30,
    ) -> None:
        self.url = db_url
        is_sqlite = make_url(db_url).get_backend_name() == "sqlite"
        kwargs: dict = {}
        connect_args = _connect_args(db_url, statement_timeout)
        if connect_args:
            kwargs["connect_args"] = connect_args
        if not _is_memory_sqlite(db_url):
            kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=True,
            )
        self.engine: Engine = create_engine(db_url, **kwargs)
        if is_sqlite:
            event.listen(self.engine, "connect", _sqlite_pragmas)

    @contextmanager
    def begin(self, conn: Connection | None = None) -> Iterator[Connection]:
        """Yield a connection inside a transaction, translating driver errors.

        Pass the connection of an enclosing begin() to join its transaction;
        the outer block then owns commit and rollback.
        """
        if conn is not None:
            with _translate_errors():
                yield conn
            return
        with _translate_errors():
            with self.engine.begin() as new_conn:
                yield new_conn

    def ping(self) -> bool:
        """Return True if a trivial query succeeds. Used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise ConflictError("Unique constraint violated.") from exc
    except SQLAlchemyError as exc:
        raise PersistenceError("Database operation failed.") from exc
