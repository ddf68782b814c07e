"""Asyncio SQLite connection adapter built on ``aiosqlite``."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Self

import aiosqlite

from batch_writer.errors import DatabaseError
from batch_writer.models import ErrorMode

logger = logging.getLogger(__name__)


class AiosqliteConnection:
    """Adapter exposing an ``aiosqlite`` connection as an AsyncConnection.

    Example:
        ```python
        async with await AiosqliteConnection.connect("items.db") as conn:
            async with AsyncBatchWriter(conn, config) as writer:
                await writer.write((1, "first"))
        ```
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        error_mode: ErrorMode = ErrorMode.SILENT,
        owns_connection: bool = False,
    ) -> None:
        """Initialize the adapter around an open connection.

        Args:
            db: Open ``aiosqlite`` connection. It should be in autocommit mode
                (``isolation_level=None``) so transactions start only on ``begin()``.
            error_mode: Initial error-reporting mode.
            owns_connection: Whether ``close()`` closes ``db``.
        """
        self._db = db
        self._owns_connection = owns_connection
        self.error_mode = error_mode
        self._last_error: str | None = None

    @classmethod
    async def connect(
        cls, db_path: str | Path, error_mode: ErrorMode = ErrorMode.SILENT
    ) -> AiosqliteConnection:
        """Open a database in autocommit mode and wrap it.

        Args:
            db_path: Path to the SQLite database file.
            error_mode: Initial error-reporting mode.

        Returns:
            An adapter that owns the new connection.
        """
        db = await aiosqlite.connect(db_path, isolation_level=None)
        return cls(db, error_mode=error_mode, owns_connection=True)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def raw(self) -> aiosqlite.Connection:
        """The wrapped ``aiosqlite`` connection."""
        return self._db

    @property
    def in_transaction(self) -> bool:
        return self._db.in_transaction

    @property
    def last_error(self) -> str | None:
        return self._last_error

    async def begin(self) -> None:
        await self._run("BEGIN")

    async def commit(self) -> None:
        await self._run("COMMIT")

    async def rollback(self) -> None:
        await self._run("ROLLBACK")

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement and return the affected row count.

        Returns:
            ``cursor.rowcount``, or -1 if the statement failed outside RAISE mode.
        """
        return await self._run(sql, params)

    async def close(self) -> None:
        """Close the connection if this adapter opened it."""
        if self._owns_connection:
            await self._db.close()

    async def _run(self, sql: str, params: Sequence[Any] = ()) -> int:
        self._last_error = None
        try:
            cursor = await self._db.execute(sql, tuple(params))
        except (sqlite3.Error, OverflowError, TypeError, ValueError) as exc:
            self._handle_error(exc, sql)
            return -1
        try:
            return cursor.rowcount
        finally:
            await cursor.close()

    def _handle_error(self, exc: Exception, sql: str) -> None:
        self._last_error = f"{type(exc).__name__}: {exc}"
        if self.error_mode is ErrorMode.RAISE:
            raise DatabaseError(self._last_error) from exc
        if self.error_mode is ErrorMode.WARNING:
            logger.warning("SQLite error %s while executing %.200s", self._last_error, sql)
