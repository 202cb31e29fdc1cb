"""Engine and transaction helpers for the SQLite store.

pysqlite normally opens transactions lazily and commits implicitly before
DDL, which would let ``CREATE``/``DROP``/``ALTER`` statements escape the
surrounding transaction.  Engines built here switch that behaviour off and
emit an explicit ``BEGIN`` whenever SQLAlchemy starts a transaction, so a
schema rewrite either commits as a whole or not at all.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine

from aioffice.config import DEFAULT_LOCK_TIMEOUT

logger = structlog.get_logger(__name__)

BEGIN_MODES = ("DEFERRED", "IMMEDIATE", "EXCLUSIVE")


class StoreNotFoundError(FileNotFoundError):
    """Raised when the store file is absent; nothing has been opened."""


def require_store(path: Union[str, os.PathLike]) -> Path:
    """Return ``path`` as a :class:`Path` if it names an existing store file.

    Checked before any engine exists: connecting to a missing path would
    silently create an empty database.
    """

    resolved = Path(path).expanduser()
    if resolved.is_dir():
        raise StoreNotFoundError(f"{resolved} is a directory, not a database file")
    if not resolved.exists():
        raise StoreNotFoundError(f"Database {resolved} does not exist")
    return resolved


def create_store_engine(
    path: Union[str, os.PathLike],
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    begin_mode: str = "EXCLUSIVE",
) -> Engine:
    """Create an engine whose transactions start with ``BEGIN <begin_mode>``.

    ``lock_timeout`` is the sqlite busy timeout in seconds: a second writer
    waits for the lock instead of interleaving with an open transaction.
    Foreign key enforcement is off so tables can be dropped and renamed in
    place; callers run ``PRAGMA foreign_key_check`` before committing.
    """

    mode = begin_mode.upper()
    if mode not in BEGIN_MODES:
        raise ValueError(f"begin_mode must be one of {BEGIN_MODES}; got {begin_mode!r}")

    engine = create_engine(
        f"sqlite:///{Path(path)}",
        future=True,
        connect_args={"timeout": lock_timeout},
    )

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):  # type: ignore[override]
        # Hand transaction control to the "begin" listener below.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=OFF")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):  # type: ignore[override]
        conn.exec_driver_sql(f"BEGIN {mode}")

    return engine


@contextmanager
def store_transaction(engine: Engine) -> Iterator[Connection]:
    """Yield a connection inside one database transaction.

    Commits when the block exits normally and rolls back on every exception,
    which is then re-raised to the caller.
    """

    with engine.connect() as conn:
        trans = conn.begin()
        try:
            yield conn
        except BaseException:
            trans.rollback()
            logger.info("store_transaction_rolled_back", url=str(engine.url))
            raise
        else:
            trans.commit()
