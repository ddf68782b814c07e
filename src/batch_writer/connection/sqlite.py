"""Synchronous SQLite connection adapter built on the stdlib ``sqlite3`` module."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Self

from batch_writer.errors import DatabaseError
from batch_writer.models import ErrorMode

logger = logging.getLogger(__name__)


class SqliteConnection:
    """Adapter exposing a ``sqlite3`` connection as a batch writer Connection.

    The connection runs in autocommit mode (``isolation_level=None``) so that
    transactions are only ever opened by an explicit ``begin()``.

    Example:
        ```python
        with SqliteConnection("items.db") as conn:
            with BatchWriter(conn, BatchWriterConfig("items", ["id", "name"])) as writer:
                writer.write((1, "first"))
        ```
    """

    def __init__(
        self,
        database: str | Path | sqlite3.Connection,
        error_mode: ErrorMode = ErrorMode.SILENT,
    ) -> None:
        """Initialize the adapter.

        Args:
            database: Database path, or an existing connection to wrap. A
                wrapped connection is switched to autocommit mode and is not
                closed by ``close()``.
            error_mode: Initial error-reporting mode.
        """
        if isinstance(database, sqlite3.Connection):
            self._conn = database
            self._owns_connection = False
        else:
            self._conn = sqlite3.connect(database)
            self._owns_connection = True
        self._conn.isolation_level = None
        self.error_mode = error_mode
        self._last_error: str | None = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def raw(self) -> sqlite3.Connection:
        """The wrapped ``sqlite3`` connection."""
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def begin(self) -> None:
        self._run("BEGIN")

    def commit(self) -> None:
        self._run("COMMIT")

    def rollback(self) -> None:
        self._run("ROLLBACK")

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement and return the affected row count.

        Args:
            sql: Statement with ``?`` placeholders.
            params: Flattened parameter values.

        Returns:
            ``cursor.rowcount``, or -1 if the statement failed outside RAISE mode.
        """
        return self._run(sql, params)

    def close(self) -> None:
        """Close the connection if this adapter opened it."""
        if self._owns_connection:
            self._conn.close()

    def _run(self, sql: str, params: Sequence[Any] = ()) -> int:
        self._last_error = None
        try:
            cursor = self._conn.execute(sql, tuple(params))
        except (sqlite3.Error, OverflowError, TypeError, ValueError) as exc:
            self._handle_error(exc, sql)
            return -1
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def _handle_error(self, exc: Exception, sql: str) -> None:
        self._last_error = f"{type(exc).__name__}: {exc}"
        if self.error_mode is ErrorMode.RAISE:
            raise DatabaseError(self._last_error) from exc
        if self.error_mode is ErrorMode.WARNING:
            logger.warning("SQLite error %s while executing %.200s", self._last_error, sql)
