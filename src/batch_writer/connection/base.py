"""Protocols for the database connections a writer drives.

A writer never talks to a driver directly. Adapters wrap a driver connection
and translate its failures into ``DatabaseError``.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, Iterable, Sequence
from typing import Any, Protocol, TypeAlias, runtime_checkable

from batch_writer.models import ErrorMode

Row: TypeAlias = Sequence[Any]
RowSource: TypeAlias = Iterable[Row]
AsyncRowSource: TypeAlias = AsyncIterable[Row] | Iterable[Row]


@runtime_checkable
class Connection(Protocol):
    """Protocol for a synchronous connection used by BatchWriter.

    Statements use positional ``?`` placeholders.

    Example:
        >>> from batch_writer.connection import Connection, SqliteConnection
        >>> isinstance(SqliteConnection(":memory:"), Connection)
        True
    """

    error_mode: ErrorMode

    @property
    def in_transaction(self) -> bool:
        """Whether a transaction is currently open."""
        ...

    @property
    def last_error(self) -> str | None:
        """Description of the most recent failure, if any."""
        ...

    def begin(self) -> None:
        """Open a transaction."""
        ...

    def commit(self) -> None:
        """Commit the open transaction."""
        ...

    def rollback(self) -> None:
        """Roll back the open transaction."""
        ...

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement with positional parameters.

        Args:
            sql: Statement with ``?`` placeholders.
            params: Flattened parameter values.

        Returns:
            Number of affected rows, or -1 when a failure was not raised.
        """
        ...


@runtime_checkable
class AsyncConnection(Protocol):
    """Protocol for an asyncio connection used by AsyncBatchWriter."""

    error_mode: ErrorMode

    @property
    def in_transaction(self) -> bool:
        """Whether a transaction is currently open."""
        ...

    @property
    def last_error(self) -> str | None:
        """Description of the most recent failure, if any."""
        ...

    async def begin(self) -> None:
        """Open a transaction."""
        ...

    async def commit(self) -> None:
        """Commit the open transaction."""
        ...

    async def rollback(self) -> None:
        """Roll back the open transaction."""
        ...

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement with positional parameters.

        Returns:
            Number of affected rows, or -1 when a failure was not raised.
        """
        ...
