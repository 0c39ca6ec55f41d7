"""
Batched writer for accepted rows.

Rows are buffered up to the batch size and flushed as one atomic insert.
"""

from collections.abc import Callable

from opi_loader.errors import SinkError
from opi_loader.observability.logger import get_logger
from opi_loader.observability.metrics import (
    batch_insert_duration_seconds,
    batches_total,
    increment_counter,
    track_duration,
)
from opi_loader.warehouse.sink import RelationalSink

logger = get_logger(__name__)


class BatchTableWriter:
    """
    Buffers rows for one table and writes them in atomic batches.

    After each successful insert on_commit(row_count) is called, which is
    where callers publish anything that must only become visible once the
    rows are durable.
    """

    def __init__(
        self,
        sink: RelationalSink,
        table_name: str,
        batch_size: int,
        on_commit: Callable[[int], None] | None = None,
    ):
        """
        Initialize batch table writer.

        Args:
            sink: Relational sink owning the table
            table_name: Target table
            batch_size: Rows per insert
            on_commit: Called with the row count after each committed batch
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.sink = sink
        self.table_name = table_name
        self.batch_size = batch_size
        self.on_commit = on_commit
        self.batches_committed = 0
        self._buffer: list[tuple] = []

    def add(self, row: tuple) -> None:
        """
        Buffer a row, flushing when the batch is full.

        Raises:
            SinkError: If the flush fails
        """
        self._buffer.append(row)
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def flush(self) -> int:
        """
        Write the buffered rows as one batch.

        Returns:
            Number of rows written

        Raises:
            SinkError: If the batch was rolled back; the buffer is dropped
        """
        if not self._buffer:
            return 0

        rows, self._buffer = self._buffer, []
        try:
            with track_duration(batch_insert_duration_seconds, table_name=self.table_name):
                count = self.sink.insert_batch(self.table_name, rows)
        except SinkError:
            increment_counter(batches_total, 1, table_name=self.table_name, status="failure")
            raise

        increment_counter(batches_total, 1, table_name=self.table_name, status="success")
        self.batches_committed += 1
        logger.debug(
            "Batch committed",
            extra={"table_name": self.table_name, "rows": count, "batch": self.batches_committed},
        )
        if self.on_commit is not None:
            self.on_commit(count)
        return count
