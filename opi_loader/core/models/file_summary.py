"""
Per-file and per-run processing summaries handed to the presentation layer.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FileState(str, Enum):
    """Lifecycle of one file's pipeline."""

    NOT_STARTED = "not_started"
    TABLE_CREATED = "table_created"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    ABORTED_FATAL = "aborted_fatal"


class FileSummary(BaseModel):
    """
    Counters for one processed file.

    When the file is finalized every record read is accounted for:
    records_read == accepted + rejected_malformed + rejected_orphan + truncated.
    Accepted counts only rows committed to the sink.
    """

    file_id: str
    table_name: str
    state: FileState = FileState.NOT_STARTED
    records_read: int = 0
    records_accepted: int = 0
    records_rejected_malformed: int = 0
    records_rejected_orphan: int = 0
    records_truncated: int = 0
    batches_committed: int = 0
    duration_seconds: float = 0.0
    error: str | None = None


class RunReport(BaseModel):
    """
    Outcome of one engine run.

    Attributes:
        reference_id: File used as the primary-key source
        summaries: One summary per scheduled file, reference first
        aborted: True when a run-level fatal error stopped the run
        errors: File-level and run-level error messages
        duration_seconds: Wall-clock duration of the run
    """

    reference_id: str
    summaries: list[FileSummary] = Field(default_factory=list)
    aborted: bool = False
    errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def failed_files(self) -> list[str]:
        return [s.file_id for s in self.summaries if s.state != FileState.FINALIZED]

    @property
    def ok(self) -> bool:
        return not self.aborted and not self.failed_files

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def summary_for(self, file_id: str) -> FileSummary:
        for summary in self.summaries:
            if summary.file_id == file_id:
                return summary
        raise KeyError(file_id)
