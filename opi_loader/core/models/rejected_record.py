"""
RejectedRecord model: a record kept out of its table, with error context.
"""

from pydantic import BaseModel, Field

from .field_spec import FieldKind
from .table import Column, Table

REJECTED_RECORD_TABLE = "rejected_record"


class RejectedRecord(BaseModel):
    """
    Quarantine row for a rejected record.

    Attributes:
        file_id: Source file identifier
        byte_offset: Position of the record in the source file
        outcome: "rejected_malformed", "rejected_orphan" or "truncated"
        reason_code: First (primary) reason code
        detail: All reasons, human-readable
        raw_record: Raw record text as read from the file
    """

    file_id: str
    byte_offset: int = Field(..., ge=0)
    outcome: str
    reason_code: str
    detail: str
    raw_record: str

    def to_row(self) -> tuple:
        return (
            self.file_id,
            self.byte_offset,
            self.outcome,
            self.reason_code,
            self.detail,
            self.raw_record,
        )

    @staticmethod
    def table() -> Table:
        """Schema of the quarantine table."""
        return Table(
            name=REJECTED_RECORD_TABLE,
            columns=[
                Column(name="file_id", kind=FieldKind.CODE, nullable=False, length=16),
                Column(name="byte_offset", kind=FieldKind.INTEGER, nullable=False, length=18),
                Column(name="outcome", kind=FieldKind.CODE, nullable=False, length=32),
                Column(name="reason_code", kind=FieldKind.CODE, nullable=False, length=64),
                Column(name="detail", kind=FieldKind.TEXT, nullable=False),
                Column(name="raw_record", kind=FieldKind.TEXT, nullable=False),
            ],
            primary_key=["file_id", "byte_offset"],
        )
