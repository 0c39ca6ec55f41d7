"""
Batch quarantine writer for rejected records.

Writes rejected records to the rejected_record table with their reason codes
and raw text, so every rejection can be traced back to its byte offset.
"""

from opi_loader.core.models.rejected_record import REJECTED_RECORD_TABLE, RejectedRecord
from opi_loader.warehouse.sink import RelationalSink

from .table_writer import BatchTableWriter


class BatchQuarantineWriter:
    """
    Buffers RejectedRecords and writes them in batches through a sink.

    The rejected_record table must already exist (see RejectedRecord.table()).
    """

    def __init__(self, sink: RelationalSink, batch_size: int):
        """
        Initialize batch quarantine writer.

        Args:
            sink: Relational sink holding the rejected_record table
            batch_size: Rejected records per insert
        """
        self._writer = BatchTableWriter(sink, REJECTED_RECORD_TABLE, batch_size)

    def write(self, record: RejectedRecord) -> None:
        self._writer.add(record.to_row())

    def flush(self) -> int:
        return self._writer.flush()
