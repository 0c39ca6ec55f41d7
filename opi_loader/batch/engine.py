"""
Normalization engine: loads a set of files into one relational sink.

Two-phase schedule:
1. the reference file is loaded and its primary keys are collected
2. every dependent file is loaded on a worker pool, checking its foreign
   keys against the now read-only reference key set

Each dependent task blocks on the reference task's future before it reads
anything, so no foreign-key check can run against a partial key set.
"""

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import BinaryIO

from opi_loader.batch.pipeline import FilePipeline
from opi_loader.config import EngineConfig
from opi_loader.core.layouts.registry import LayoutRegistry
from opi_loader.core.models import FileState, FileSummary, RejectedRecord, RunReport
from opi_loader.core.reference import ReferenceResolver
from opi_loader.errors import LayoutConfigurationError, SinkError, SinkUnavailableError
from opi_loader.observability.logger import get_logger, log_operation
from opi_loader.observability.metrics import record_file_summary
from opi_loader.warehouse.sink import RelationalSink

logger = get_logger(__name__)


class ErrorAggregator:
    """Thread-safe collection of error messages raised while files load concurrently."""

    def __init__(self):
        self._lock = threading.Lock()
        self._errors: list[tuple[str, str]] = []

    def add(self, source: str, message: str) -> None:
        with self._lock:
            self._errors.append((source, message))

    def messages(self) -> list[str]:
        with self._lock:
            return [f"{source}: {message}" for source, message in self._errors]


class NormalizationEngine:
    """
    Schedules file pipelines against a shared sink.

    Failure handling:
    - a file-level failure is recorded in that file's summary; other files continue
    - a failure of the reference file, or an unusable sink, aborts the run:
      files not yet started stay not_started and running ones stop
    """

    def __init__(
        self,
        registry: LayoutRegistry,
        sink: RelationalSink,
        reference_id: str,
        open_source: Callable[[str], BinaryIO],
        config: EngineConfig | None = None,
    ):
        """
        Initialize normalization engine.

        Args:
            registry: Validated layout registry
            sink: Relational sink for all tables
            reference_id: File whose primary keys all foreign keys point at
            open_source: Opens the byte stream of a file id
            config: Engine configuration (defaults to EngineConfig.from_env())

        Raises:
            UnknownLayoutError: If reference_id is not registered
            LayoutConfigurationError: If the reference layout has no single-field primary key
        """
        reference = registry.get(reference_id)
        if reference.key_field is None:
            raise LayoutConfigurationError(f"Reference file {reference_id} needs a single-field primary key")

        self.registry = registry
        self.sink = sink
        self.reference_id = reference_id
        self.open_source = open_source
        self.config = config or EngineConfig.from_env()
        self.resolver: ReferenceResolver | None = None

    def schedule(self, file_ids: list[str] | None = None) -> list[str]:
        """
        Order the files of a run: the reference file first, then the others
        in the given (or registry) order.

        Raises:
            UnknownLayoutError: If a file id is not registered
            LayoutConfigurationError: If a file has a foreign key to anything but the reference file
        """
        requested = file_ids if file_ids is not None else self.registry.file_ids()
        ordered = [self.reference_id]
        for file_id in requested:
            self.registry.get(file_id)
            if file_id not in ordered:
                ordered.append(file_id)

        for file_id in ordered:
            for field_name, target in self.registry.get(file_id).foreign_keys.items():
                if target.file_id != self.reference_id:
                    raise LayoutConfigurationError(
                        f"{file_id}.{field_name} references {target.file_id}; "
                        f"only foreign keys to the reference file {self.reference_id} can be resolved"
                    )
        return ordered

    def run(self, file_ids: list[str] | None = None) -> RunReport:
        """
        Load the reference file and then every dependent file.

        Args:
            file_ids: Files to load; defaults to every registered file. The
                reference file is always included.

        Returns:
            RunReport with one summary per scheduled file

        Raises:
            UnknownLayoutError: If file_ids names an unregistered file (before any work starts)
        """
        schedule = self.schedule(file_ids)
        summaries = {
            file_id: FileSummary(file_id=file_id, table_name=self.registry.get(file_id).table_name)
            for file_id in schedule
        }
        self.resolver = ReferenceResolver(self.registry.get(self.reference_id))
        errors = ErrorAggregator()
        cancel = threading.Event()
        started = time.perf_counter()

        with log_operation(
            "Normalization run", logger=logger, reference_id=self.reference_id, files=len(schedule)
        ):
            if self._prepare_sink(errors, cancel):
                self._execute(schedule, summaries, errors, cancel)

            if not cancel.is_set():
                try:
                    self.sink.finalize()
                except SinkError as e:
                    errors.add("sink", f"finalize failed: {e}")
                    cancel.set()

        for summary in summaries.values():
            if summary.state == FileState.NOT_STARTED:
                record_file_summary(summary)

        report = RunReport(
            reference_id=self.reference_id,
            summaries=[summaries[file_id] for file_id in schedule],
            aborted=cancel.is_set(),
            errors=errors.messages(),
            duration_seconds=time.perf_counter() - started,
        )
        logger.info(
            "Run complete",
            extra={"ok": report.ok, "aborted": report.aborted, "failed_files": report.failed_files},
        )
        return report

    def _prepare_sink(self, errors: ErrorAggregator, cancel: threading.Event) -> bool:
        if not self.config.quarantine_rejects:
            return True
        try:
            self.sink.create_table(RejectedRecord.table())
        except SinkError as e:
            errors.add("sink", f"cannot create rejected_record table: {e}")
            cancel.set()
            return False
        return True

    def _execute(
        self,
        schedule: list[str],
        summaries: dict[str, FileSummary],
        errors: ErrorAggregator,
        cancel: threading.Event,
    ) -> None:
        with ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="opi-loader") as executor:
            reference_future = executor.submit(
                self._load_reference, summaries[self.reference_id], errors, cancel
            )
            futures = [
                executor.submit(
                    self._load_dependent, file_id, reference_future, summaries[file_id], errors, cancel
                )
                for file_id in schedule[1:]
            ]

            reference_future.result()
            for future in as_completed([reference_future, *futures]):
                if cancel.is_set():
                    for pending in futures:
                        pending.cancel()
                if not future.cancelled():
                    future.result()

    def _load_reference(
        self,
        summary: FileSummary,
        errors: ErrorAggregator,
        cancel: threading.Event,
    ) -> FileSummary:
        summary = self._run_pipeline(self.reference_id, summary, errors, cancel)
        if summary.state != FileState.FINALIZED:
            if not cancel.is_set():
                logger.error(
                    "Reference file failed, aborting run",
                    extra={"file_id": self.reference_id, "error_message": summary.error},
                )
            cancel.set()
            return summary

        self.resolver.freeze()
        return summary

    def _load_dependent(
        self,
        file_id: str,
        reference_future: "Future[FileSummary]",
        summary: FileSummary,
        errors: ErrorAggregator,
        cancel: threading.Event,
    ) -> FileSummary:
        reference_future.result()
        if cancel.is_set():
            return summary
        return self._run_pipeline(file_id, summary, errors, cancel)

    def _run_pipeline(
        self,
        file_id: str,
        summary: FileSummary,
        errors: ErrorAggregator,
        cancel: threading.Event,
    ) -> FileSummary:
        pipeline = FilePipeline(
            file_id,
            self.registry,
            self.sink,
            self.resolver,
            config=self.config,
            summary=summary,
            cancel=cancel,
        )
        try:
            pipeline.run(lambda: self.open_source(file_id))
        except SinkUnavailableError as e:
            errors.add(file_id, f"sink unavailable: {e}")
            cancel.set()
            return summary

        if summary.state == FileState.ABORTED_FATAL:
            errors.add(file_id, summary.error or "aborted")
        return summary
