"""
Per-file pipeline.

Drives one source file through its lifecycle:

    not_started -> table_created -> streaming -> finalized
                                         `-> aborted_fatal

Flow per record: frame -> decode -> key checks -> route. Accepted rows go to
the table in atomic batches; rejected records are counted, logged and
quarantined. Only the current batch is ever held in memory.
"""

import threading
import time
from collections.abc import Callable, Iterable
from typing import BinaryIO

from opi_loader.batch.readers.fixed_width_reader import FixedWidthReader, RawRecord
from opi_loader.batch.writers import BatchQuarantineWriter, BatchTableWriter
from opi_loader.config import EngineConfig
from opi_loader.core.decoders import RecordDecoder
from opi_loader.core.layouts.registry import LayoutRegistry
from opi_loader.core.models import (
    Accepted,
    DecodedRecord,
    FileState,
    FileSummary,
    RejectedMalformed,
    RejectedOrphan,
    RejectedRecord,
    RejectionReason,
    Table,
    ValidationOutcome,
)
from opi_loader.core.reference import ReferenceResolver
from opi_loader.errors import (
    FieldDecodeError,
    FilePipelineError,
    RecordDecodeError,
    SinkError,
    SinkUnavailableError,
    SourceIntegrityError,
)
from opi_loader.observability.logger import get_logger, log_operation
from opi_loader.observability.metrics import (
    file_processing_duration_seconds,
    observe_histogram,
    record_decode_failure,
    record_file_summary,
)
from opi_loader.warehouse.sink import RelationalSink

logger = get_logger(__name__)

DUPLICATE_KEY = "duplicate_key"
TRUNCATED_RECORD = "truncated_record"


class FilePipeline:
    """
    Loads one file into its table.

    The reference file (is_reference=True) harvests its primary keys into
    the resolver as batches commit. Any other file checks its foreign keys
    against the frozen resolver.
    """

    def __init__(
        self,
        file_id: str,
        registry: LayoutRegistry,
        sink: RelationalSink,
        resolver: ReferenceResolver,
        config: EngineConfig | None = None,
        summary: FileSummary | None = None,
        cancel: threading.Event | None = None,
    ):
        """
        Initialize file pipeline.

        Args:
            file_id: File to load
            registry: Layout registry
            sink: Relational sink receiving rows and rejects
            resolver: Reference key set (mutated only when this is the reference file)
            config: Engine configuration
            summary: Summary to fill in; a fresh one is created when omitted
            cancel: Set by the engine when the whole run is being aborted
        """
        self.layout = registry.get(file_id)
        self.registry = registry
        self.sink = sink
        self.resolver = resolver
        self.config = config or EngineConfig()
        self.cancel = cancel or threading.Event()
        self.is_reference = file_id == resolver.file_id
        self.summary = summary or FileSummary(file_id=file_id, table_name=self.layout.table_name)

        self.decoder = RecordDecoder(self.layout)
        self.reader = FixedWidthReader(self.layout, self.config.read_chunk_size)
        self.table_writer = BatchTableWriter(
            sink, self.layout.table_name, self.config.batch_size, on_commit=self._on_commit
        )
        self.quarantine_writer = (
            BatchQuarantineWriter(sink, self.config.batch_size) if self.config.quarantine_rejects else None
        )

    @property
    def file_id(self) -> str:
        return self.layout.file_id

    def run(self, open_stream: Callable[[], BinaryIO]) -> FileSummary:
        """
        Load the file.

        File-level failures end in state aborted_fatal and are reported in
        the returned summary.

        Args:
            open_stream: Opens the file's byte stream

        Returns:
            The file summary

        Raises:
            SinkUnavailableError: If the sink became unusable; the run must stop
        """
        started = time.perf_counter()
        try:
            with log_operation("Loading file", logger=logger, file_id=self.file_id):
                self._create_table()
                with open_stream() as stream:
                    self.summary.state = FileState.STREAMING
                    self.consume(self.reader.iter_records(stream))
                self._finish()
        except SinkUnavailableError as e:
            self._abort(e)
            raise
        except (FilePipelineError, SinkError, SourceIntegrityError, OSError) as e:
            self._abort(e)
        finally:
            self.summary.duration_seconds = time.perf_counter() - started
            observe_histogram(file_processing_duration_seconds, self.summary.duration_seconds, file_id=self.file_id)
            record_file_summary(self.summary)

        return self.summary

    def _create_table(self) -> None:
        table = Table.from_layout(self.layout, self.registry)
        self.sink.create_table(table)
        self.summary.state = FileState.TABLE_CREATED

    def consume(self, records: Iterable[RawRecord]) -> None:
        """
        Route every record of the stream.

        Raises:
            FilePipelineError: If the run is cancelled or too many records are truncated
            SinkError: If a batch insert fails
        """
        for raw in records:
            if self.cancel.is_set():
                raise FilePipelineError(self.file_id, "run aborted")
            self.summary.records_read += 1

            if raw.truncated:
                self._handle_truncated(raw)
                continue

            outcome = self.validate(raw)
            if isinstance(outcome, Accepted):
                if self.is_reference:
                    self.resolver.stage(outcome.row[self.resolver.key_field])
                self.table_writer.add(tuple(outcome.row[name] for name in self.layout.field_names))
            elif isinstance(outcome, RejectedMalformed):
                self.summary.records_rejected_malformed += 1
                self._reject(raw, outcome.status, outcome.reasons)
            else:
                self.summary.records_rejected_orphan += 1
                self._reject(
                    raw,
                    outcome.status,
                    [
                        RejectionReason(
                            code=outcome.reason_code,
                            field_name=outcome.field_name,
                            message=f"{outcome.missing_key!r} not found in {self.resolver.file_id}",
                        )
                    ],
                )

    def validate(self, raw: RawRecord) -> ValidationOutcome:
        """Decode a record and check its keys."""
        try:
            decoded = self.decoder.decode(raw.offset, raw.data)
        except RecordDecodeError as e:
            return self._malformed(raw, e.errors)

        if self.is_reference:
            return self._check_primary_key(decoded)
        return self._check_foreign_keys(decoded)

    def _malformed(self, raw: RawRecord, errors: list[FieldDecodeError]) -> RejectedMalformed:
        for error in errors:
            record_decode_failure(self.file_id, error.field_name, error.code)
            if self.is_reference and error.field_name == self.resolver.key_field:
                self.resolver.skip(error.code, raw.offset)

        return RejectedMalformed(
            file_id=self.file_id,
            byte_offset=raw.offset,
            reasons=[
                RejectionReason(code=error.code, field_name=error.field_name, message=error.message)
                for error in errors
            ],
        )

    def _check_primary_key(self, decoded: DecodedRecord) -> ValidationOutcome:
        key = self.resolver.key_of(decoded)
        if key is None:
            return RejectedMalformed(
                file_id=self.file_id,
                byte_offset=decoded.byte_offset,
                reasons=[
                    RejectionReason(
                        code=FieldDecodeError.REQUIRED_FIELD_EMPTY,
                        field_name=self.resolver.key_field,
                        message="primary key is empty",
                    )
                ],
            )
        if self.resolver.is_known(key):
            return RejectedMalformed(
                file_id=self.file_id,
                byte_offset=decoded.byte_offset,
                reasons=[
                    RejectionReason(
                        code=DUPLICATE_KEY,
                        field_name=self.resolver.key_field,
                        message=f"primary key {key!r} already loaded",
                    )
                ],
            )
        return Accepted(file_id=self.file_id, byte_offset=decoded.byte_offset, row=decoded.field_values)

    def _check_foreign_keys(self, decoded: DecodedRecord) -> ValidationOutcome:
        for field_name in self.layout.foreign_keys:
            value = decoded.field_values.get(field_name)
            # Null foreign keys are not checked
            if value is not None and not self.resolver.contains(value):
                return RejectedOrphan(
                    file_id=self.file_id,
                    byte_offset=decoded.byte_offset,
                    field_name=field_name,
                    missing_key=value,
                )
        return Accepted(file_id=self.file_id, byte_offset=decoded.byte_offset, row=decoded.field_values)

    def _handle_truncated(self, raw: RawRecord) -> None:
        self.summary.records_truncated += 1
        self._reject(
            raw,
            "truncated",
            [
                RejectionReason(
                    code=TRUNCATED_RECORD,
                    message=f"{len(raw.data)} of {self.layout.record_width} bytes",
                )
            ],
        )
        if self.summary.records_truncated > self.config.max_truncated_records:
            raise FilePipelineError(
                self.file_id,
                f"{self.summary.records_truncated} truncated records "
                f"(limit {self.config.max_truncated_records})",
            )

    def _reject(self, raw: RawRecord, outcome: str, reasons: list[RejectionReason]) -> None:
        detail = "; ".join(str(reason) for reason in reasons)
        logger.debug(
            "Record rejected",
            extra={
                "file_id": self.file_id,
                "byte_offset": raw.offset,
                "outcome": outcome,
                "reason_code": reasons[0].code,
                "detail": detail,
            },
        )
        if self.quarantine_writer is None:
            return

        self.quarantine_writer.write(
            RejectedRecord(
                file_id=self.file_id,
                byte_offset=raw.offset,
                outcome=outcome,
                reason_code=reasons[0].code,
                detail=detail,
                raw_record=raw.data.decode(self.layout.encoding, errors="replace"),
            )
        )

    def _on_commit(self, count: int) -> None:
        self.summary.records_accepted += count
        self.summary.batches_committed += 1
        if self.is_reference:
            self.resolver.commit_staged()

    def _finish(self) -> None:
        self.table_writer.flush()
        if self.quarantine_writer is not None:
            self.quarantine_writer.flush()
        self.summary.state = FileState.FINALIZED
        logger.info(
            "File finalized",
            extra={
                "file_id": self.file_id,
                "records_read": self.summary.records_read,
                "records_accepted": self.summary.records_accepted,
                "records_rejected_malformed": self.summary.records_rejected_malformed,
                "records_rejected_orphan": self.summary.records_rejected_orphan,
                "records_truncated": self.summary.records_truncated,
            },
        )

    def _abort(self, error: Exception) -> None:
        if self.is_reference:
            self.resolver.discard_staged()
        self.summary.state = FileState.ABORTED_FATAL
        self.summary.error = str(error)
        logger.error(
            "File aborted",
            extra={"file_id": self.file_id, "error_type": type(error).__name__, "error_message": str(error)},
        )
