"""
Unit tests for the per-file pipeline, run against in-memory sinks.
"""

import io
import threading
from datetime import date
from decimal import Decimal

import pytest
from conftest import FailingSink, RecordingSink, encode_records, make_person_layout, make_visit_layout
from hypothesis import given, settings
from hypothesis import strategies as st

from opi_loader.batch.pipeline import FilePipeline
from opi_loader.config import EngineConfig
from opi_loader.core.layouts import LayoutRegistry
from opi_loader.core.models import REJECTED_RECORD_TABLE, FileState, RejectedRecord
from opi_loader.core.reference import ReferenceResolver
from opi_loader.errors import SinkUnavailableError

PEOPLE = [
    {"ID": "A1", "NAME": "Alice"},
    {"ID": "A2", "NAME": "Bob"},
    {"ID": "A1", "NAME": "Alice Dup"},
    {"ID": None, "NAME": "Nobody"},
]

VISITS = [
    {"PID": "A1", "VISITED": date(2024, 1, 5), "COST": Decimal("12.50")},
    {"PID": "B9", "VISITED": date(2024, 1, 6), "COST": Decimal("1.00")},
    {"PID": None, "VISITED": date(2024, 1, 7), "COST": None},
]


def with_quarantine(sink: RecordingSink) -> RecordingSink:
    sink.create_table(RejectedRecord.table())
    return sink


def opener(data: bytes):
    return lambda: io.BytesIO(data)


@pytest.fixture
def frozen_resolver(person_layout) -> ReferenceResolver:
    resolver = ReferenceResolver(person_layout)
    for key in ("A1", "A2"):
        resolver.stage(key)
    resolver.commit_staged()
    resolver.freeze()
    return resolver


class TestReferencePipeline:
    """Tests for the reference file pass"""

    def test_keys_harvested_and_bad_keys_rejected(self, registry, person_layout):
        sink = with_quarantine(RecordingSink())
        resolver = ReferenceResolver(person_layout)
        pipeline = FilePipeline("A", registry, sink, resolver, EngineConfig(batch_size=2))

        summary = pipeline.run(opener(encode_records(person_layout, PEOPLE)))
        resolver.freeze()

        assert summary.state == FileState.FINALIZED
        assert summary.records_read == 4
        assert summary.records_accepted == 2
        assert summary.records_rejected_malformed == 2
        assert sink.column("person", "id") == ["A1", "A2"]
        assert resolver.contains("A1") and resolver.contains("A2")
        assert resolver.skipped_keys == 1

        reasons = sink.column(REJECTED_RECORD_TABLE, "reason_code")
        assert reasons == ["duplicate_key", "required_field_empty"]
        assert sink.column(REJECTED_RECORD_TABLE, "byte_offset") == [24, 36]

    def test_failed_batch_keys_not_published(self, registry, person_layout):
        sink = with_quarantine(FailingSink("person", fail_on=1))
        resolver = ReferenceResolver(person_layout)
        pipeline = FilePipeline("A", registry, sink, resolver, EngineConfig(batch_size=10))

        summary = pipeline.run(opener(encode_records(person_layout, PEOPLE[:2])))
        resolver.freeze()

        assert summary.state == FileState.ABORTED_FATAL
        assert "simulated batch failure" in summary.error
        assert len(resolver) == 0


class TestDependentPipeline:
    """Tests for dependent files"""

    def test_orphans_rejected_and_null_keys_accepted(self, registry, visit_layout, frozen_resolver):
        sink = with_quarantine(RecordingSink())
        pipeline = FilePipeline("B", registry, sink, frozen_resolver, EngineConfig())

        summary = pipeline.run(opener(encode_records(visit_layout, VISITS)))

        assert summary.state == FileState.FINALIZED
        assert summary.records_accepted == 2
        assert summary.records_rejected_orphan == 1
        assert sink.column("visit", "pid") == ["A1", None]
        assert sink.column("visit", "cost") == [Decimal("12.50"), None]
        assert sink.column(REJECTED_RECORD_TABLE, "outcome") == ["rejected_orphan"]
        assert sink.column(REJECTED_RECORD_TABLE, "raw_record")[0].startswith("B9")

    def test_batches_are_bounded(self, registry, visit_layout, frozen_resolver):
        sink = with_quarantine(RecordingSink())
        pipeline = FilePipeline("B", registry, sink, frozen_resolver, EngineConfig(batch_size=1))

        summary = pipeline.run(opener(encode_records(visit_layout, VISITS)))

        assert summary.batches_committed == 2

    def test_malformed_records_counted(self, registry, visit_layout, frozen_resolver):
        sink = with_quarantine(RecordingSink())
        data = encode_records(visit_layout, VISITS[:1]) + b"A12024XX05001250"
        pipeline = FilePipeline("B", registry, sink, frozen_resolver, EngineConfig())

        summary = pipeline.run(opener(data))

        assert summary.records_rejected_malformed == 1
        assert sink.column(REJECTED_RECORD_TABLE, "reason_code") == ["invalid_date"]
        assert sink.column(REJECTED_RECORD_TABLE, "byte_offset") == [16]

    def test_quarantine_disabled(self, registry, visit_layout, frozen_resolver):
        sink = RecordingSink()
        config = EngineConfig(quarantine_rejects=False)
        pipeline = FilePipeline("B", registry, sink, frozen_resolver, config)

        summary = pipeline.run(opener(encode_records(visit_layout, VISITS)))

        assert summary.state == FileState.FINALIZED
        assert summary.records_rejected_orphan == 1
        assert REJECTED_RECORD_TABLE not in sink.rows


class TestTruncatedRecords:
    """Tests for the truncated-record tolerance"""

    def test_single_truncated_record_tolerated(self, registry, visit_layout, frozen_resolver):
        sink = with_quarantine(RecordingSink())
        data = encode_records(visit_layout, VISITS[:1]) + b"A1202401"
        pipeline = FilePipeline("B", registry, sink, frozen_resolver, EngineConfig())

        summary = pipeline.run(opener(data))

        assert summary.state == FileState.FINALIZED
        assert summary.records_truncated == 1
        assert summary.records_read == 2
        assert sink.column(REJECTED_RECORD_TABLE, "outcome") == ["truncated"]

    def test_truncated_beyond_limit_aborts(self, registry, visit_layout, frozen_resolver):
        sink = with_quarantine(RecordingSink())
        data = encode_records(visit_layout, VISITS[:1]) + b"A1202401"
        config = EngineConfig(max_truncated_records=0)
        pipeline = FilePipeline("B", registry, sink, frozen_resolver, config)

        summary = pipeline.run(opener(data))

        assert summary.state == FileState.ABORTED_FATAL
        assert "truncated" in summary.error


class TestFatalErrors:
    """Tests for file-level and run-level failures"""

    def test_batch_failure_aborts_file(self, registry, visit_layout, frozen_resolver):
        sink = with_quarantine(FailingSink("visit", fail_on=1))
        pipeline = FilePipeline("B", registry, sink, frozen_resolver, EngineConfig())

        summary = pipeline.run(opener(encode_records(visit_layout, VISITS)))

        assert summary.state == FileState.ABORTED_FATAL
        assert summary.records_accepted == 0
        assert sink.rows["visit"] == []

    def test_sink_unavailable_propagates(self, registry, visit_layout, frozen_resolver):
        sink = with_quarantine(FailingSink("visit", error=SinkUnavailableError("disk full")))
        pipeline = FilePipeline("B", registry, sink, frozen_resolver, EngineConfig())

        with pytest.raises(SinkUnavailableError):
            pipeline.run(opener(encode_records(visit_layout, VISITS)))

        assert pipeline.summary.state == FileState.ABORTED_FATAL

    def test_unreadable_source(self, registry, frozen_resolver):
        def missing():
            raise FileNotFoundError("B.dat")

        pipeline = FilePipeline("B", registry, with_quarantine(RecordingSink()), frozen_resolver)

        summary = pipeline.run(missing)

        assert summary.state == FileState.ABORTED_FATAL
        assert "B.dat" in summary.error

    def test_cancelled_run(self, registry, visit_layout, frozen_resolver):
        cancel = threading.Event()
        cancel.set()
        pipeline = FilePipeline(
            "B", registry, with_quarantine(RecordingSink()), frozen_resolver, cancel=cancel
        )

        summary = pipeline.run(opener(encode_records(visit_layout, VISITS)))

        assert summary.state == FileState.ABORTED_FATAL
        assert summary.error == "B: run aborted"


class TestOrphanProperty:
    """Persisted foreign keys always exist in the reference key set"""

    @settings(max_examples=50, deadline=None)
    @given(st.lists(st.sampled_from(["A1", "A2", "B9", "C3", None]), max_size=20))
    def test_only_known_keys_persisted(self, pids):
        person, visit = make_person_layout(), make_visit_layout()
        registry = LayoutRegistry([person, visit])
        resolver = ReferenceResolver(person)
        resolver.stage("A1")
        resolver.stage("A2")
        resolver.commit_staged()
        resolver.freeze()
        sink = with_quarantine(RecordingSink())
        rows = [{"PID": pid, "VISITED": date(2024, 1, 1), "COST": None} for pid in pids]

        summary = FilePipeline("B", registry, sink, resolver, EngineConfig(batch_size=3)).run(
            opener(encode_records(visit, rows))
        )

        persisted = sink.column("visit", "pid")
        assert all(pid is None or pid in {"A1", "A2"} for pid in persisted)
        assert summary.records_rejected_orphan == sum(pid in {"B9", "C3"} for pid in pids)
        assert summary.records_accepted == len(persisted) == len(pids) - summary.records_rejected_orphan
