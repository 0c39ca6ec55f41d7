"""
Relational sink interface.

A sink owns table creation and atomic batch inserts for one output
database. Implementations must be safe to call from several worker threads.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from opi_loader.core.models.table import Table
from opi_loader.errors import SinkError


class RelationalSink(ABC):
    """
    Abstract base class for relational outputs.

    Error contract:
    - SinkError: the operation failed; nothing of a failed batch is persisted
    - SinkUnavailableError: the sink can no longer be used at all
    """

    dialect: str = ""

    def __init__(self) -> None:
        self._tables: dict[str, Table] = {}

    @abstractmethod
    def create_table(self, table: Table) -> None:
        """
        Create a table with its column types, primary key and foreign keys.

        Raises:
            SinkError: If the DDL fails
        """

    @abstractmethod
    def insert_batch(self, table_name: str, rows: Sequence[tuple]) -> int:
        """
        Insert rows in one transaction: all are persisted or none is.

        Args:
            table_name: Table previously passed to create_table
            rows: Tuples in the table's column order

        Returns:
            Number of rows inserted

        Raises:
            SinkError: If the batch was rolled back
        """

    @abstractmethod
    def finalize(self) -> None:
        """Flush and optimise the output once every file has been loaded."""

    def close(self) -> None:
        pass

    def table(self, table_name: str) -> Table:
        try:
            return self._tables[table_name]
        except KeyError:
            raise SinkError(f"Table '{table_name}' has not been created", table_name=table_name) from None

    @property
    def tables(self) -> list[str]:
        return list(self._tables)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
