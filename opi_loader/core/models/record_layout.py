"""
RecordLayout model: the complete fixed-width schema of one source file.
"""

import codecs
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from opi_loader.utils.naming import to_snake_case

from .field_spec import FieldSpec


class ForeignKey(BaseModel):
    """Target of a foreign key: a field of another file's layout."""

    file_id: str = Field(..., min_length=1)
    field_name: str = Field(..., min_length=1)

    class Config:
        frozen = True


class RecordLayout(BaseModel):
    """
    Immutable layout of one source file.

    Attributes:
        file_id: Source file identifier (e.g. "OFNT3AA1")
        name: Human-readable file name (e.g. "Offender Profile")
        table_name: Target table; derived from name when omitted
        record_width: Fixed record width in bytes, excluding any line terminator
        fields: Ordered field specifications
        primary_key: Names of the primary-key fields (possibly empty)
        foreign_keys: Field name -> referenced (file_id, field_name)
        framing: "fixed" (back-to-back records) or "newline" (LF-terminated lines)
        encoding: Character encoding of the raw bytes
    """

    file_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    table_name: str = ""
    record_width: int = Field(..., gt=0)
    fields: list[FieldSpec] = Field(..., min_length=1)
    primary_key: list[str] = Field(default_factory=list)
    foreign_keys: dict[str, ForeignKey] = Field(default_factory=dict)
    framing: Literal["fixed", "newline"] = "fixed"
    encoding: str = "latin-1"

    @model_validator(mode="before")
    @classmethod
    def default_table_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("table_name") and data.get("name"):
            data = {**data, "table_name": to_snake_case(data["name"])}
        return data

    @field_validator("encoding")
    @classmethod
    def check_encoding(cls, v):
        codecs.lookup(v)
        return v

    @model_validator(mode="after")
    def check_field_layout(self):
        """Field names unique, every field inside the record, no overlaps."""
        seen = set()
        for spec in self.fields:
            if spec.name in seen:
                raise ValueError(f"Duplicate field name '{spec.name}' in layout {self.file_id}")
            seen.add(spec.name)
            if spec.end > self.record_width:
                raise ValueError(
                    f"Field '{spec.name}' ends at byte {spec.end}, beyond record width {self.record_width}"
                )

        ordered = sorted(self.fields, key=lambda s: s.offset)
        for previous, current in zip(ordered, ordered[1:]):
            if current.offset < previous.end:
                raise ValueError(
                    f"Field '{current.name}' (offset {current.offset}) overlaps "
                    f"'{previous.name}' (ends at {previous.end}) in layout {self.file_id}"
                )

        for key in self.primary_key:
            if key not in seen:
                raise ValueError(f"Primary key field '{key}' is not defined in layout {self.file_id}")
            if self.field(key).nullable:
                raise ValueError(f"Primary key field '{key}' of layout {self.file_id} cannot be nullable")

        for key in self.foreign_keys:
            if key not in seen:
                raise ValueError(f"Foreign key field '{key}' is not defined in layout {self.file_id}")

        return self

    @property
    def field_names(self) -> list[str]:
        return [spec.name for spec in self.fields]

    @property
    def key_field(self) -> str | None:
        """The single primary-key field, or None for empty/composite keys."""
        if len(self.primary_key) == 1:
            return self.primary_key[0]
        return None

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    class Config:
        frozen = True
