"""
Pytest configuration and fixtures for opi-loader tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import io
from collections.abc import Sequence
from typing import Generator

import pytest

from opi_loader.core.decoders import FieldDecoder
from opi_loader.core.layouts import LayoutRegistry
from opi_loader.core.models import FieldKind, FieldSpec, ForeignKey, RecordLayout, Table
from opi_loader.errors import SinkError
from opi_loader.warehouse.sink import RelationalSink


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that load files through the full engine"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# LAYOUT FIXTURES
# =======================

def make_person_layout() -> RecordLayout:
    """Reference layout: 2-byte id + 10-byte name."""
    return RecordLayout(
        file_id="A",
        name="Person",
        record_width=12,
        primary_key=["ID"],
        fields=[
            FieldSpec(name="ID", offset=0, length=2, kind=FieldKind.CODE, nullable=False),
            FieldSpec(name="NAME", offset=2, length=10, kind=FieldKind.TEXT),
        ],
    )


def make_visit_layout() -> RecordLayout:
    """Dependent layout: nullable person id, visit date, cost with 2 implied decimals."""
    return RecordLayout(
        file_id="B",
        name="Visit",
        record_width=16,
        foreign_keys={"PID": ForeignKey(file_id="A", field_name="ID")},
        fields=[
            FieldSpec(name="PID", offset=0, length=2, kind=FieldKind.CODE),
            FieldSpec(name="VISITED", offset=2, length=8, kind=FieldKind.DATE),
            FieldSpec(name="COST", offset=10, length=6, kind=FieldKind.DECIMAL, scale=2),
        ],
    )


@pytest.fixture
def person_layout() -> RecordLayout:
    return make_person_layout()


@pytest.fixture
def visit_layout() -> RecordLayout:
    return make_visit_layout()


@pytest.fixture
def registry(person_layout, visit_layout) -> LayoutRegistry:
    return LayoutRegistry([person_layout, visit_layout])


@pytest.fixture(scope="session")
def field_decoder() -> FieldDecoder:
    return FieldDecoder()


def encode_records(layout: RecordLayout, rows: Sequence[dict], separator: bytes = b"") -> bytes:
    """Build a file body from field-value dicts."""
    decoder = FieldDecoder()
    return b"".join(decoder.encode_record(layout, row) + separator for row in rows)


def byte_sources(files: dict[str, bytes]):
    """open_source callable serving in-memory file bodies."""
    def open_source(file_id: str) -> io.BytesIO:
        if file_id not in files:
            raise FileNotFoundError(file_id)
        return io.BytesIO(files[file_id])

    return open_source


# =======================
# SINK FIXTURES
# =======================

class RecordingSink(RelationalSink):
    """In-memory sink keeping every committed row, for tests without a database."""

    dialect = "memory"

    def __init__(self):
        super().__init__()
        self.rows: dict[str, list[tuple]] = {}
        self.finalized = 0
        self.closed = False

    def create_table(self, table: Table) -> None:
        self._tables[table.name] = table
        self.rows.setdefault(table.name, [])

    def insert_batch(self, table_name: str, rows: Sequence[tuple]) -> int:
        self.table(table_name)
        self.rows[table_name].extend(rows)
        return len(rows)

    def finalize(self) -> None:
        self.finalized += 1

    def close(self) -> None:
        self.closed = True

    def column(self, table_name: str, column_name: str) -> list:
        index = self.table(table_name).column_names.index(column_name)
        return [row[index] for row in self.rows[table_name]]


class FailingSink(RecordingSink):
    """Raises the given error on the n-th insert into one table (1-based)."""

    def __init__(self, table_name: str, fail_on: int = 1, error: SinkError | None = None):
        super().__init__()
        self.fail_table = table_name
        self.fail_on = fail_on
        self.error = error or SinkError("simulated batch failure", table_name=table_name)
        self._inserts = 0

    def insert_batch(self, table_name: str, rows: Sequence[tuple]) -> int:
        if table_name == self.fail_table:
            self._inserts += 1
            if self._inserts == self.fail_on:
                raise self.error
        return super().insert_batch(table_name, rows)


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator:
    """
    Start PostgreSQL container for integration tests

    Skips when Docker is not reachable.

    Yields:
        PostgresContainer instance
    """
    docker = pytest.importorskip("docker")
    from testcontainers.postgres import PostgresContainer

    try:
        docker.from_env().ping()
    except docker.errors.DockerException as e:
        pytest.skip(f"Docker is not available: {e}")

    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_opi",
        password="test_password",
        dbname="test_opi",
    ) as postgres:
        postgres.get_connection_url()
        yield postgres


@pytest.fixture
def postgres_pool(postgres_container):
    """
    Open connection pool on a database with no tables

    Yields:
        DatabaseConnectionPool
    """
    from opi_loader.warehouse.connection import DatabaseConnectionPool

    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_opi",
        user="test_opi",
        password="test_password",
        max_size=6,
    )
    pool.open()
    with pool.get_connection() as conn:
        conn.execute("DROP SCHEMA public CASCADE")
        conn.execute("CREATE SCHEMA public")
    try:
        yield pool
    finally:
        pool.close()
