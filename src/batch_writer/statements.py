"""Rendering of multi-row insert statements."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from batch_writer.models import ConflictPolicy, Dialect

_QUOTE_CHARS = {
    Dialect.MYSQL: "`",
    Dialect.SQLITE: '"',
}

_OPERATIONS = {
    (Dialect.MYSQL, ConflictPolicy.IGNORE_DUPLICATES): "INSERT IGNORE",
    (Dialect.MYSQL, ConflictPolicy.REPLACE_DUPLICATES): "REPLACE",
    (Dialect.SQLITE, ConflictPolicy.IGNORE_DUPLICATES): "INSERT OR IGNORE",
    (Dialect.SQLITE, ConflictPolicy.REPLACE_DUPLICATES): "REPLACE",
}


def quote_identifier(
    name: str, dialect: Dialect = Dialect.SQLITE, *, qualified: bool = False
) -> str:
    """Quote a table or column name so special characters survive.

    Embedded quote characters are doubled. With ``qualified`` set, a dotted
    name such as ``schema.table`` is quoted part by part; otherwise the dot is
    part of the identifier.

    Args:
        name: Identifier to quote.
        dialect: Dialect whose quote character is used.
        qualified: Treat dots as schema separators.

    Returns:
        The quoted identifier.

    Example:
        >>> quote_identifier("#items", Dialect.MYSQL)
        '`#items`'
        >>> quote_identifier("price.usd")
        '"price.usd"'
    """
    quote = _QUOTE_CHARS[Dialect(dialect)]
    parts = name.split(".") if qualified else [name]
    return ".".join(f"{quote}{part.replace(quote, quote * 2)}{quote}" for part in parts)


@dataclass(frozen=True)
class InsertStatement:
    """Reusable multi-row insert for one table and column list.

    The prefix is rendered once; ``render`` appends one placeholder group per
    row.

    Attributes:
        table: Destination table name.
        columns: Ordered column names.
        conflict_policy: Duplicate-key handling.
        dialect: SQL dialect.
    """

    table: str
    columns: tuple[str, ...]
    conflict_policy: ConflictPolicy = ConflictPolicy.IGNORE_DUPLICATES
    dialect: Dialect = Dialect.SQLITE
    prefix: str = field(init=False, repr=False, compare=False)
    row_group: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        operation = _OPERATIONS[(Dialect(self.dialect), ConflictPolicy(self.conflict_policy))]
        column_list = ",".join(quote_identifier(col, self.dialect) for col in self.columns)
        table = quote_identifier(self.table, self.dialect, qualified=True)
        object.__setattr__(self, "prefix", f"{operation} INTO {table} ({column_list}) VALUES ")
        object.__setattr__(self, "row_group", "(" + ",".join(["?"] * len(self.columns)) + ")")

    @property
    def column_count(self) -> int:
        """Number of values each row must carry."""
        return len(self.columns)

    def render(self, row_count: int) -> str:
        """Render the statement for ``row_count`` rows.

        Args:
            row_count: Number of placeholder groups to emit (must be positive).

        Returns:
            The complete SQL string.
        """
        if row_count < 1:
            raise ValueError("row_count must be positive")
        return self.prefix + ",".join([self.row_group] * row_count)

    @staticmethod
    def flatten(rows: Sequence[Sequence[Any]]) -> list[Any]:
        """Flatten buffered rows into one positional parameter list."""
        return [value for row in rows for value in row]
