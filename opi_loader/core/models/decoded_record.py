"""
DecodedRecord model: one raw record after field decoding (ephemeral).
"""

from typing import Any

from pydantic import BaseModel, Field


class DecodedRecord(BaseModel):
    """
    Typed field values of one record.

    Consumed immediately by the file pipeline and never buffered in bulk;
    only the accepted row values travel on to the sink.

    Attributes:
        file_id: Source file identifier
        byte_offset: Position of the record in the source file
        field_values: Field name -> typed value (None for null)
    """

    file_id: str
    byte_offset: int = Field(..., ge=0)
    field_values: dict[str, Any]
