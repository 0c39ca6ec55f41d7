"""
SQLite output database.

A single connection is shared by all worker threads and serialised with a
lock; every batch is one explicit transaction.
"""

import sqlite3
import threading
from collections.abc import Sequence
from datetime import date, time
from decimal import Decimal
from pathlib import Path

from opi_loader.core.models.table import Table
from opi_loader.errors import SinkError, SinkUnavailableError
from opi_loader.observability.logger import get_logger

from .schema_mgmt import TableDDLBuilder
from .sink import RelationalSink

logger = get_logger(__name__)

PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
)

# sqlite3 error messages meaning the database file itself is unusable
UNAVAILABLE_MARKERS = (
    "unable to open",
    "disk i/o error",
    "database or disk is full",
    "readonly database",
    "file is not a database",
    "database disk image is malformed",
)


# Range of an SQLite INTEGER
MIN_INTEGER = -(1 << 63)
MAX_INTEGER = (1 << 63) - 1


def adapt_value(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, int) and not MIN_INTEGER <= value <= MAX_INTEGER:
        return str(value)
    if isinstance(value, (date, time)):
        return value.isoformat()
    return value


class SQLiteSink(RelationalSink):
    """
    Writes tables to a fresh SQLite database file.

    Usage:
        with SQLiteSink("opi.sqlite") as sink:
            sink.create_table(table)
            sink.insert_batch(table.name, rows)
            sink.finalize()
    """

    dialect = "sqlite"

    def __init__(self, path: str | Path, overwrite: bool = False, timeout: float = 30.0):
        """
        Args:
            path: Database file to create
            overwrite: Replace an existing file instead of refusing it
            timeout: Seconds to wait on a locked database

        Raises:
            SinkError: If the file exists and overwrite is False
            SinkUnavailableError: If the database cannot be opened
        """
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            if not overwrite:
                raise SinkError(f"Output database {self.path} already exists (use overwrite to replace it)")
            for suffix in ("", "-wal", "-shm", "-journal"):
                Path(f"{self.path}{suffix}").unlink(missing_ok=True)

        self._ddl = TableDDLBuilder(self.dialect)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        try:
            self._conn = sqlite3.connect(
                self.path,
                timeout=timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            for pragma in PRAGMAS:
                self._conn.execute(pragma)
        except sqlite3.Error as e:
            raise SinkUnavailableError(f"Cannot open SQLite database {self.path}: {e}") from e

        logger.info("SQLite sink opened", extra={"path": str(self.path)})

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise SinkUnavailableError(f"SQLite database {self.path} is closed")
        return self._conn

    def create_table(self, table: Table) -> None:
        sql = self._ddl.create_table(table)
        with self._lock:
            try:
                self.connection.execute(sql)
            except sqlite3.Error as e:
                raise self._translate(e, table.name) from e
            self._tables[table.name] = table
        logger.debug("Table created", extra={"table_name": table.name, "columns": len(table.columns)})

    def insert_batch(self, table_name: str, rows: Sequence[tuple]) -> int:
        if not rows:
            return 0
        sql = self._ddl.insert(self.table(table_name))
        values = [tuple(adapt_value(v) for v in row) for row in rows]

        with self._lock:
            conn = self.connection
            try:
                conn.execute("BEGIN")
                conn.executemany(sql, values)
                conn.execute("COMMIT")
            except (sqlite3.Error, OverflowError, ValueError) as e:
                self._rollback(conn, table_name)
                raise self._translate(e, table_name, rows=len(rows)) from e
        return len(rows)

    def finalize(self) -> None:
        """Fold the WAL back into the main file and refresh planner statistics."""
        with self._lock:
            conn = self.connection
            try:
                conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                conn.execute("PRAGMA journal_mode=DELETE")
                conn.execute("PRAGMA optimize")
            except sqlite3.Error as e:
                raise self._translate(e, None) from e
        logger.info("SQLite sink finalized", extra={"path": str(self.path), "tables": len(self._tables)})

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @staticmethod
    def _rollback(conn: sqlite3.Connection, table_name: str) -> None:
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error("Rollback failed", extra={"table_name": table_name, "error_message": str(e)})

    @staticmethod
    def _translate(error: Exception, table_name: str | None, **context) -> SinkError:
        message = str(error)
        if any(marker in message.lower() for marker in UNAVAILABLE_MARKERS):
            return SinkUnavailableError(message, table_name=table_name, **context)
        return SinkError(message, table_name=table_name, **context)
