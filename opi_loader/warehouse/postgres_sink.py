"""
PostgreSQL output database backed by the psycopg connection pool.

Each batch runs on its own pooled connection in one transaction, so worker
threads write concurrently without sharing a connection.
"""

from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import psycopg

from opi_loader.core.models.table import Table
from opi_loader.errors import SinkError, SinkUnavailableError
from opi_loader.observability.logger import get_logger

from .connection import DatabaseConnectionPool
from .schema_mgmt import TableDDLBuilder, quote_identifier
from .sink import RelationalSink

logger = get_logger(__name__)


class PostgresSink(RelationalSink):
    """
    Writes tables to a PostgreSQL database.

    The pool is owned by the caller and must be open.
    """

    dialect = "postgres"

    def __init__(self, pool: DatabaseConnectionPool, drop_existing: bool = False):
        """
        Args:
            pool: Open database connection pool
            drop_existing: Drop each table before creating it
        """
        super().__init__()
        self.pool = pool
        self.drop_existing = drop_existing
        self._ddl = TableDDLBuilder(self.dialect)

    @contextmanager
    def _translate_errors(self, table_name: str | None, **context) -> Iterator[None]:
        try:
            yield
        except psycopg.OperationalError as e:
            raise SinkUnavailableError(str(e), table_name=table_name, **context) from e
        except psycopg.Error as e:
            raise SinkError(str(e), table_name=table_name, **context) from e

    def create_table(self, table: Table) -> None:
        with self._translate_errors(table.name):
            with self.pool.get_connection() as conn:
                with conn.transaction():
                    if self.drop_existing:
                        conn.execute(self._ddl.drop_table(table))
                    conn.execute(self._ddl.create_table(table))
        self._tables[table.name] = table
        logger.debug("Table created", extra={"table_name": table.name, "columns": len(table.columns)})

    def insert_batch(self, table_name: str, rows: Sequence[tuple]) -> int:
        if not rows:
            return 0
        sql = self._ddl.insert(self.table(table_name))

        with self._translate_errors(table_name, rows=len(rows)):
            with self.pool.get_connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.executemany(sql, list(rows))
        return len(rows)

    def finalize(self) -> None:
        """Refresh planner statistics for every loaded table."""
        with self._translate_errors(None):
            with self.pool.get_connection() as conn:
                for table_name in self._tables:
                    conn.execute(f"ANALYZE {quote_identifier(table_name)}")
                conn.commit()
        logger.info("PostgreSQL sink finalized", extra={"tables": len(self._tables)})
