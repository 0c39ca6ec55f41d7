"""
Sink-side table schema derived 1:1 from a RecordLayout.
"""

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from .field_spec import FieldKind
from .record_layout import RecordLayout

if TYPE_CHECKING:
    from opi_loader.core.layouts.registry import LayoutRegistry


class Column(BaseModel):
    """
    A table column.

    Attributes:
        name: Column name (lower-cased field name)
        kind: Field kind; each sink maps it to its own SQL type
        nullable: Whether NULL is allowed
        length: Source width in bytes (None for unbounded text)
        scale: Implied decimal places for numeric kinds
    """

    name: str = Field(..., min_length=1)
    kind: FieldKind
    nullable: bool = True
    length: int | None = None
    scale: int = 0

    class Config:
        frozen = True


class TableForeignKey(BaseModel):
    column: str
    referenced_table: str
    referenced_column: str

    class Config:
        frozen = True


class Table(BaseModel):
    """
    Table creation request handed to a relational sink.

    Attributes:
        name: Table name
        columns: Ordered columns; rows are tuples in this order
        primary_key: Primary-key column names
        foreign_keys: Foreign-key declarations
    """

    name: str = Field(..., min_length=1)
    columns: list[Column] = Field(..., min_length=1)
    primary_key: list[str] = Field(default_factory=list)
    foreign_keys: list[TableForeignKey] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    @classmethod
    def from_layout(cls, layout: RecordLayout, registry: "LayoutRegistry") -> "Table":
        """
        Build the table for a layout.

        Args:
            layout: Layout of the source file
            registry: Registry used to resolve the tables that foreign keys reference

        Returns:
            Table with one column per field, in layout order
        """
        columns = [
            Column(
                name=column_name(spec.name),
                kind=spec.kind,
                nullable=spec.nullable,
                length=spec.length,
                scale=spec.scale,
            )
            for spec in layout.fields
        ]

        foreign_keys = []
        for field_name, target in layout.foreign_keys.items():
            referenced = registry.get(target.file_id)
            foreign_keys.append(
                TableForeignKey(
                    column=column_name(field_name),
                    referenced_table=referenced.table_name,
                    referenced_column=column_name(target.field_name),
                )
            )

        return cls(
            name=layout.table_name,
            columns=columns,
            primary_key=[column_name(name) for name in layout.primary_key],
            foreign_keys=foreign_keys,
        )


def column_name(field_name: str) -> str:
    return field_name.lower()
