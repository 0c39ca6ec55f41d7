"""
Prometheus metrics collection for opi-loader

Counters are labelled by file identifier so a run over all twelve OPI files
can be broken down per table. Metrics live in a private registry; the CLI
can expose it with start_metrics_server().
"""
import os

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


REGISTRY = CollectorRegistry()


# =======================
# RECORD METRICS
# =======================

# status: accepted, rejected_malformed, rejected_orphan, truncated
records_processed_total = Counter(
    name="opi_records_processed_total",
    documentation="Total number of records read, by final outcome",
    labelnames=["file_id", "status"],
    registry=REGISTRY,
)

decode_failures_total = Counter(
    name="opi_decode_failures_total",
    documentation="Total number of field decode failures",
    labelnames=["file_id", "field_name", "reason"],
    registry=REGISTRY,
)

reference_keys_skipped_total = Counter(
    name="opi_reference_keys_skipped_total",
    documentation="Reference records whose primary key could not be harvested",
    labelnames=["file_id", "reason"],
    registry=REGISTRY,
)

# =======================
# SINK METRICS
# =======================

# status: success, failure
batches_total = Counter(
    name="opi_batches_total",
    documentation="Total number of batch inserts attempted",
    labelnames=["table_name", "status"],
    registry=REGISTRY,
)

batch_insert_duration_seconds = Histogram(
    name="opi_batch_insert_duration_seconds",
    documentation="Time spent committing one batch to the sink",
    labelnames=["table_name"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0],
    registry=REGISTRY,
)

# =======================
# FILE METRICS
# =======================

# state: finalized, aborted_fatal, not_started
files_processed_total = Counter(
    name="opi_files_processed_total",
    documentation="Files that reached a terminal state",
    labelnames=["state"],
    registry=REGISTRY,
)

file_processing_duration_seconds = Histogram(
    name="opi_file_processing_duration_seconds",
    documentation="Wall-clock time to load one file",
    labelnames=["file_id"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def start_metrics_server(port: int | None = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(batch_insert_duration_seconds, table_name="offender_profile"):
            sink.insert_batch(...)
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


def record_file_summary(summary) -> None:
    """
    Record the per-outcome counts of a finished file.

    Args:
        summary: FileSummary of a file that reached a terminal state
    """
    file_id = summary.file_id
    increment_counter(records_processed_total, summary.records_accepted, file_id=file_id, status="accepted")
    increment_counter(
        records_processed_total, summary.records_rejected_malformed, file_id=file_id, status="rejected_malformed"
    )
    increment_counter(
        records_processed_total, summary.records_rejected_orphan, file_id=file_id, status="rejected_orphan"
    )
    increment_counter(records_processed_total, summary.records_truncated, file_id=file_id, status="truncated")
    increment_counter(files_processed_total, 1, state=summary.state.value)


def record_decode_failure(file_id: str, field_name: str, reason: str) -> None:
    increment_counter(decode_failures_total, 1, file_id=file_id, field_name=field_name, reason=reason)
