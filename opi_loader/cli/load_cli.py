"""
Command-line interface for loading OPI files.

Usage:
    opi-loader load --data-dir data --output opi.sqlite [options]
    opi-loader load --data-dir data --postgres [--db-host ...] [options]
    opi-loader files
"""

import argparse
import sys
from pathlib import Path

import psycopg

from opi_loader.batch.engine import NormalizationEngine
from opi_loader.config import EngineConfig
from opi_loader.core.layouts import (
    LayoutConfigLoader,
    LayoutRegistry,
    build_registry_from_descriptors,
    load_catalog,
)
from opi_loader.core.models import RunReport
from opi_loader.errors import OPILoaderError
from opi_loader.observability.logger import get_logger, setup_logger
from opi_loader.observability.metrics import start_metrics_server
from opi_loader.sources import DataDirectory
from opi_loader.utils.naming import format_count, format_duration
from opi_loader.warehouse.connection import DatabaseConnectionPool
from opi_loader.warehouse.postgres_sink import PostgresSink
from opi_loader.warehouse.sink import RelationalSink
from opi_loader.warehouse.sqlite_sink import SQLiteSink

logger = get_logger(__name__)

SUMMARY_COLUMNS = ("FILE", "TABLE", "STATE", "READ", "ACCEPTED", "MALFORMED", "ORPHAN", "TRUNCATED")


def build_registry(args, data_dir: DataDirectory) -> LayoutRegistry:
    """
    Build the layout registry from --layouts, or from the descriptors found
    in the data directory.
    """
    if args.layouts:
        return LayoutConfigLoader(args.layouts).load_registry()

    catalog = load_catalog()
    if args.files:
        file_ids = list(dict.fromkeys([args.reference, *args.files]))
    else:
        available = set(data_dir.available_ids())
        file_ids = [file_id for file_id in catalog.file_ids if file_id in available]
        if args.reference not in file_ids:
            file_ids.insert(0, args.reference)

    texts = {file_id: data_dir.read_descriptor(file_id) for file_id in file_ids}
    return build_registry_from_descriptors(catalog, texts, args.reference)


def verify_sources(data_dir: DataDirectory, file_ids: list[str]) -> None:
    """
    Raises:
        SourceIntegrityError: On the first missing file or checksum mismatch
    """
    catalog = load_catalog()
    for file_id in file_ids:
        entry = catalog.entry(file_id)
        if entry.dat_sha256:
            data_dir.verify(file_id, entry.dat_sha256)


def open_sink(args, pool: DatabaseConnectionPool | None) -> RelationalSink:
    if pool is not None:
        return PostgresSink(pool, drop_existing=args.force)
    return SQLiteSink(args.output, overwrite=args.force)


def format_report(report: RunReport) -> str:
    rows = [SUMMARY_COLUMNS]
    for s in report.summaries:
        rows.append((
            s.file_id,
            s.table_name,
            s.state.value,
            format_count(s.records_read),
            format_count(s.records_accepted),
            format_count(s.records_rejected_malformed),
            format_count(s.records_rejected_orphan),
            format_count(s.records_truncated),
        ))

    widths = [max(len(row[i]) for row in rows) for i in range(len(SUMMARY_COLUMNS))]
    lines = []
    for row in rows:
        cells = [
            cell.ljust(width) if i < 3 else cell.rjust(width)
            for i, (cell, width) in enumerate(zip(row, widths))
        ]
        lines.append("  ".join(cells).rstrip())

    lines.append("")
    lines.append(f"Total time: {format_duration(report.duration_seconds)}")
    if report.aborted:
        lines.append("Run ABORTED")
    for error in report.errors:
        lines.append(f"  error: {error}")
    return "\n".join(lines)


def load_command(args) -> int:
    """
    Execute the load command.

    Returns:
        Process exit code
    """
    data_dir = DataDirectory(args.data_dir)
    config = EngineConfig.from_env(
        batch_size=args.batch_size,
        max_workers=args.workers,
        quarantine_rejects=False if args.no_quarantine else None,
    )

    registry = build_registry(args, data_dir)
    file_ids = args.files or None

    if args.verify:
        verify_sources(data_dir, file_ids or registry.file_ids())

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    pool = None
    if args.postgres:
        pool = DatabaseConnectionPool(
            host=args.db_host,
            port=args.db_port,
            database=args.db_name,
            user=args.db_user,
            password=args.db_password,
            max_size=config.max_workers + 1,
        )
        pool.open()

    try:
        with open_sink(args, pool) as sink:
            engine = NormalizationEngine(registry, sink, args.reference, data_dir.open_dat, config)
            report = engine.run(file_ids)
    finally:
        if pool is not None:
            pool.close()

    print(format_report(report))
    return report.exit_code


def files_command(args) -> int:
    catalog = load_catalog()
    for entry in catalog.files:
        marker = "*" if entry.id == catalog.default_reference else " "
        print(f"{marker} {entry.id}  {entry.name}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    catalog = load_catalog()

    parser = argparse.ArgumentParser(
        prog="opi-loader",
        description="Load NC DAC Offender Public Information files into a relational database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Load every file found under ./data into SQLite
  opi-loader load --data-dir data --output opi.sqlite

  # Reload two files, replacing the previous output
  opi-loader load --data-dir data --output opi.sqlite --force --files INMT4AA1 INMT4BB1

  # Load into PostgreSQL (password from DB_PASSWORD)
  opi-loader load --data-dir data --postgres --db-host localhost --db-name opi
        """
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: LOG_LEVEL env var or INFO)"
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "text"],
        help="Log format (default: LOG_FORMAT env var or json)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    load_parser = subparsers.add_parser("load", help="Load data files into a database")
    load_parser.add_argument(
        "--data-dir",
        required=True,
        type=Path,
        help="Directory holding <ID>/<ID>.dat and <ID>/<ID>.des"
    )
    target = load_parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--output",
        type=Path,
        help="SQLite database file to create"
    )
    target.add_argument(
        "--postgres",
        action="store_true",
        help="Load into PostgreSQL instead of SQLite"
    )
    load_parser.add_argument(
        "--force",
        action="store_true",
        help="Replace an existing SQLite file / drop existing PostgreSQL tables"
    )
    load_parser.add_argument(
        "--reference",
        default=catalog.default_reference,
        help=f"Reference file holding the primary keys (default: {catalog.default_reference})"
    )
    load_parser.add_argument(
        "--layouts",
        type=Path,
        help="YAML file with explicit record layouts (instead of .des descriptors)"
    )
    load_parser.add_argument(
        "--files",
        nargs="+",
        metavar="ID",
        help="Only load these files (the reference file is always loaded)"
    )
    load_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads for dependent files (default: OPI_MAX_WORKERS or 4)"
    )
    load_parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Rows per insert batch (default: OPI_BATCH_SIZE or 2000)"
    )
    load_parser.add_argument(
        "--no-quarantine",
        action="store_true",
        help="Do not write rejected records to the rejected_record table"
    )
    load_parser.add_argument(
        "--verify",
        action="store_true",
        help="Check each data file's SHA-256 against the catalog before loading"
    )
    load_parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while loading"
    )

    # Database connection arguments
    load_parser.add_argument("--db-host", default=None, help="Database host (default: DB_HOST or localhost)")
    load_parser.add_argument("--db-port", type=int, default=None, help="Database port (default: DB_PORT or 5432)")
    load_parser.add_argument("--db-name", default=None, help="Database name (default: DB_NAME or opi)")
    load_parser.add_argument("--db-user", default=None, help="Database user (default: DB_USER or opi)")
    load_parser.add_argument("--db-password", default=None, help="Database password (default: DB_PASSWORD)")

    subparsers.add_parser("files", help="List the published OPI files")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logger(level=args.log_level, format_type=args.log_format)

    try:
        if args.command == "load":
            return load_command(args)
        return files_command(args)
    except (OPILoaderError, psycopg.Error, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}", extra={"error_type": type(e).__name__})
        return 1


if __name__ == "__main__":
    sys.exit(main())
