"""
DDL and DML rendering for the relational sinks.
"""

from opi_loader.core.models.field_spec import FieldKind
from opi_loader.core.models.table import Column, Table

PLACEHOLDERS = {
    "sqlite": "?",
    "postgres": "%s",
}

# Widest integer that always fits a BIGINT
MAX_BIGINT_DIGITS = 18


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class TableDDLBuilder:
    """
    Renders CREATE TABLE and INSERT statements for a dialect.

    Type mapping:

    | kind                   | sqlite  | postgres                         |
    | ---------------------- | ------- | -------------------------------- |
    | text, code             | TEXT    | VARCHAR(length) / TEXT           |
    | integer                | INTEGER | BIGINT                           |
    | integer (scaled, wide) | TEXT    | NUMERIC(length, scale)           |
    | decimal                | TEXT    | NUMERIC(length, scale) / NUMERIC |
    | date                   | TEXT    | DATE                             |
    | time                   | TEXT    | TIME                             |

    SQLite stores exact numbers as TEXT: its NUMERIC affinity would turn
    them into 8-byte REALs, and its INTEGER holds 64 bits at most.
    """

    def __init__(self, dialect: str):
        if dialect not in PLACEHOLDERS:
            raise ValueError(f"Unsupported SQL dialect: {dialect}")
        self.dialect = dialect

    def column_type(self, column: Column) -> str:
        if self.dialect == "sqlite":
            return self._sqlite_type(column)
        return self._postgres_type(column)

    def _sqlite_type(self, column: Column) -> str:
        if column.kind == FieldKind.INTEGER and not self._exceeds_bigint(column):
            return "INTEGER"
        return "TEXT"

    def _postgres_type(self, column: Column) -> str:
        kind = column.kind
        if kind in (FieldKind.TEXT, FieldKind.CODE):
            return f"VARCHAR({column.length})" if column.length else "TEXT"
        if kind == FieldKind.INTEGER:
            if self._exceeds_bigint(column):
                return f"NUMERIC({column.length}, {column.scale})"
            return "BIGINT"
        if kind == FieldKind.DECIMAL:
            if column.scale and column.length:
                return f"NUMERIC({column.length}, {column.scale})"
            return "NUMERIC"
        if kind == FieldKind.DATE:
            return "DATE"
        return "TIME"

    @staticmethod
    def _exceeds_bigint(column: Column) -> bool:
        return bool(column.scale) or (column.length or 0) > MAX_BIGINT_DIGITS

    def create_table(self, table: Table) -> str:
        lines = []
        for column in table.columns:
            line = f"{quote_identifier(column.name)} {self.column_type(column)}"
            if not column.nullable:
                line += " NOT NULL"
            lines.append(line)

        if table.primary_key:
            lines.append(f"PRIMARY KEY ({', '.join(quote_identifier(c) for c in table.primary_key)})")

        for fk in table.foreign_keys:
            lines.append(
                f"FOREIGN KEY ({quote_identifier(fk.column)}) "
                f"REFERENCES {quote_identifier(fk.referenced_table)} ({quote_identifier(fk.referenced_column)})"
            )

        body = ",\n    ".join(lines)
        return f"CREATE TABLE IF NOT EXISTS {quote_identifier(table.name)} (\n    {body}\n)"

    def drop_table(self, table: Table) -> str:
        cascade = " CASCADE" if self.dialect == "postgres" else ""
        return f"DROP TABLE IF EXISTS {quote_identifier(table.name)}{cascade}"

    def insert(self, table: Table) -> str:
        columns = ", ".join(quote_identifier(name) for name in table.column_names)
        placeholders = ", ".join([PLACEHOLDERS[self.dialect]] * len(table.columns))
        return f"INSERT INTO {quote_identifier(table.name)} ({columns}) VALUES ({placeholders})"
