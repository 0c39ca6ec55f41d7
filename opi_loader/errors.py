"""
Exception hierarchy for the loader.

Configuration errors abort before any file is touched, record-level errors
are caught by the file pipeline and turned into rejection outcomes,
file-level errors stop one file, and sink-unavailable errors stop the run.
"""

from typing import Any


class OPILoaderError(Exception):
    """Base class for all loader errors."""


# =======================
# CONFIGURATION ERRORS
# =======================

class LayoutConfigurationError(OPILoaderError):
    """Raised when a record layout or the layout catalog is inconsistent."""


class UnknownLayoutError(OPILoaderError, KeyError):
    """Raised when no layout is registered for a file identifier."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"No record layout registered for file '{file_id}'")

    def __str__(self) -> str:
        return self.args[0]


# =======================
# RECORD-LEVEL ERRORS
# =======================

class FieldDecodeError(OPILoaderError):
    """Raised when a raw field slice cannot be decoded into its typed value."""

    REQUIRED_FIELD_EMPTY = "required_field_empty"
    TYPE_MISMATCH = "type_mismatch"
    INVALID_DATE = "invalid_date"
    INVALID_TIME = "invalid_time"

    def __init__(self, code: str, field_name: str, raw: bytes, message: str):
        self.code = code
        self.field_name = field_name
        self.raw = raw
        self.message = message
        super().__init__(f"[{code}] {field_name}: {message} (raw={raw!r})")


class RecordDecodeError(OPILoaderError):
    """Raised when one or more fields of a record fail to decode."""

    def __init__(self, byte_offset: int, errors: list[FieldDecodeError]):
        self.byte_offset = byte_offset
        self.errors = errors
        codes = ", ".join(f"{e.field_name}:{e.code}" for e in errors)
        super().__init__(f"Record at byte {byte_offset} failed to decode ({codes})")


# =======================
# FILE / RUN-LEVEL ERRORS
# =======================

class ReferenceResolverError(OPILoaderError):
    """Raised on misuse of the reference key set (e.g. mutation after freeze)."""


class FilePipelineError(OPILoaderError):
    """Raised when a single file's pipeline must stop."""

    def __init__(self, file_id: str, message: str, cause: Exception | None = None):
        self.file_id = file_id
        self.cause = cause
        super().__init__(f"{file_id}: {message}")


class SinkError(OPILoaderError):
    """Raised by a relational sink when a DDL or batch operation fails."""

    def __init__(self, message: str, table_name: str | None = None, **context: Any):
        self.table_name = table_name
        self.context = context
        super().__init__(message)


class SinkUnavailableError(SinkError):
    """Raised when the sink itself can no longer be used; aborts the whole run."""


class SourceIntegrityError(OPILoaderError):
    """Raised when a source file is missing or fails checksum verification."""
