"""SQLite-backed metadata database for the store, with its schema."""

from __future__ import annotations

import os
import sqlite3
from typing import Any, Callable

from filelock import FileLock

DB_FILENAME = "cas.sqlite"
LOCK_FILENAME = "db.lock"
DB_VERSION = 0
_DIR_MODE = 0o777

CREATE_STATEMENTS = (
    "CREATE TABLE IF NOT EXISTS version (version int);",
    f"INSERT INTO version VALUES ({DB_VERSION})",
    # The primary key is "aciurl".
    "CREATE TABLE IF NOT EXISTS remote "
    "(aciurl text, sigurl text, etag text, blobkey text);",
    "CREATE UNIQUE INDEX IF NOT EXISTS aciurlidx ON remote (aciurl)",
    # The primary key is "blobkey", the key of the image in the blob store.
    "CREATE TABLE IF NOT EXISTS aciinfo "
    "(blobkey text, appname text, importtime text, latest bool);",
    "CREATE UNIQUE INDEX IF NOT EXISTS blobkeyidx ON aciinfo (blobkey)",
    "CREATE INDEX IF NOT EXISTS appnameidx ON aciinfo (appname)",
)

TxFunc = Callable[[sqlite3.Connection], Any]


class DBError(Exception):
    """Raised for database state and version errors."""


class DB:
    """A database in a directory, opened under an exclusive lock."""

    def __init__(self, dbdir):
        self.dbdir = os.fspath(dbdir)
        os.makedirs(self.dbdir, mode=_DIR_MODE, exist_ok=True)
        self._lock: FileLock | None = None
        self._conn: sqlite3.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """Lock the database directory and connect."""
        if self._lock is not None:
            raise DBError("cas db lock already gained")
        lock = FileLock(os.path.join(self.dbdir, LOCK_FILENAME))
        lock.acquire()
        try:
            conn = sqlite3.connect(
                os.path.join(self.dbdir, DB_FILENAME), isolation_level=None
            )
        except sqlite3.Error as exc:
            lock.release()
            raise DBError(f"cas db open failed: {exc}") from exc
        self._lock = lock
        self._conn = conn

    def close(self) -> None:
        """Disconnect and release the directory lock."""
        if self._lock is None:
            raise DBError("cas db, close called without lock")
        if self._conn is None:
            raise DBError("cas db, close called without an open connection")
        conn, lock = self._conn, self._lock
        self._conn = None
        self._lock = None
        try:
            conn.close()
        except sqlite3.Error as exc:
            raise DBError(f"cas db close failed: {exc}") from exc
        finally:
            lock.release()

    def do(self, *fns: TxFunc) -> Any:
        """Open the database, run the functions in one transaction, close it."""
        self.open()
        try:
            return self.do_tx(*fns)
        finally:
            self.close()

    def do_tx(self, *fns: TxFunc) -> Any:
        """Run the functions in one transaction; any exception rolls it back.

        Returns the value of the last function.
        """
        if self._conn is None:
            raise DBError("cas db is not open")
        conn = self._conn
        conn.execute("BEGIN")
        result = None
        try:
            for fn in fns:
                result = fn(conn)
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
        return result


def db_is_populated(conn: sqlite3.Connection) -> bool:
    """Tell whether the schema exists, at any version."""
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
        ("version",),
    ).fetchone()
    return row is not None


def get_db_version(conn: sqlite3.Connection) -> int:
    """Return the schema version stored in the database."""
    row = conn.execute("SELECT version FROM version").fetchone()
    if row is None:
        raise DBError("db version table empty")
    return int(row[0])


def update_db_version(conn: sqlite3.Connection, version: int) -> None:
    """Replace the stored schema version."""
    conn.execute("DELETE FROM version")
    conn.execute("INSERT INTO version VALUES (?)", (version,))


def create_schema(conn: sqlite3.Connection) -> None:
    """Create the schema if missing and check that its version is current."""
    if not db_is_populated(conn):
        for stmt in CREATE_STATEMENTS:
            conn.execute(stmt)
    version = get_db_version(conn)
    if version < DB_VERSION:
        raise DBError(
            f"Current cas db version: {version} lesser than the expected "
            f"version: {DB_VERSION}"
        )
    if version > DB_VERSION:
        raise DBError(
            f"Current cas db version: {version} greater than the expected "
            f"version: {DB_VERSION}"
        )