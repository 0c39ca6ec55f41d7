"""
ValidationOutcome: the per-record verdict of the file pipeline (ephemeral).

Outcomes are plain tagged values rather than exceptions so the pipeline
branches explicitly on them.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class RejectionReason(BaseModel):
    """
    One reason a record was rejected.

    Attributes:
        code: Machine-readable reason (e.g. "type_mismatch", "duplicate_key")
        field_name: Field the reason applies to, if any
        message: Human-readable detail
    """

    code: str
    field_name: str | None = None
    message: str = ""

    def __str__(self) -> str:
        prefix = f"{self.field_name}: " if self.field_name else ""
        return f"[{self.code}] {prefix}{self.message}"


class Accepted(BaseModel):
    """Record passed decoding and key checks; its row goes to the sink."""

    status: Literal["accepted"] = "accepted"
    file_id: str
    byte_offset: int
    row: dict[str, Any]


class RejectedMalformed(BaseModel):
    """Record could not be decoded or violates its own key constraints."""

    status: Literal["rejected_malformed"] = "rejected_malformed"
    file_id: str
    byte_offset: int
    reasons: list[RejectionReason] = Field(..., min_length=1)

    @property
    def reason_code(self) -> str:
        return self.reasons[0].code


class RejectedOrphan(BaseModel):
    """Record's foreign key has no matching key in the reference file."""

    status: Literal["rejected_orphan"] = "rejected_orphan"
    file_id: str
    byte_offset: int
    field_name: str
    missing_key: Any

    @property
    def reason_code(self) -> str:
        return "orphan_foreign_key"


ValidationOutcome = Annotated[
    Union[Accepted, RejectedMalformed, RejectedOrphan],
    Field(discriminator="status"),
]
