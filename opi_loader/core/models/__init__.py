"""
Core data models for the OPI loader.

All models use Pydantic for runtime validation and type safety.
"""

from .decoded_record import DecodedRecord
from .field_spec import FieldKind, FieldSpec
from .file_summary import FileState, FileSummary, RunReport
from .record_layout import ForeignKey, RecordLayout
from .rejected_record import REJECTED_RECORD_TABLE, RejectedRecord
from .table import Column, Table, TableForeignKey, column_name
from .validation_outcome import (
    Accepted,
    RejectedMalformed,
    RejectedOrphan,
    RejectionReason,
    ValidationOutcome,
)

__all__ = [
    "FieldKind",
    "FieldSpec",
    "ForeignKey",
    "RecordLayout",
    "DecodedRecord",
    "Accepted",
    "RejectedMalformed",
    "RejectedOrphan",
    "RejectionReason",
    "ValidationOutcome",
    "Column",
    "Table",
    "TableForeignKey",
    "column_name",
    "FileState",
    "FileSummary",
    "RunReport",
    "RejectedRecord",
    "REJECTED_RECORD_TABLE",
]
