"""Pytest configuration and fixtures for batch-writer tests."""

from __future__ import annotations

import os
import sqlite3
import tempfile
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest

from batch_writer.errors import DatabaseError
from batch_writer.models import ErrorMode


class FakeConnection:
    """In-memory Connection that records every call.

    Affected rows default to the number of placeholder groups in the statement.
    """

    def __init__(self) -> None:
        self.error_mode = ErrorMode.SILENT
        self.calls: list[str] = []
        self.statements: list[tuple[str, list[Any]]] = []
        self.fail_begin = False
        self.fail_commit = False
        self.fail_execute = False
        self.affected: int | None = None
        self.execute_exception: Exception | None = None
        self.modes_seen: list[ErrorMode] = []
        self._in_transaction = False
        self._last_error: str | None = None

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def begin(self) -> None:
        self.calls.append("begin")
        if self.fail_begin:
            self._fail("cannot start a transaction")
            return
        self._in_transaction = True

    def commit(self) -> None:
        self.calls.append("commit")
        if self.fail_commit:
            self._fail("disk I/O error")
            return
        if not self._in_transaction:
            self._fail("cannot commit - no transaction is active")
            return
        self._in_transaction = False

    def rollback(self) -> None:
        self.calls.append("rollback")
        self._in_transaction = False

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        self.calls.append("execute")
        self.modes_seen.append(self.error_mode)
        self.statements.append((sql, list(params)))
        if self.execute_exception is not None:
            raise self.execute_exception
        if self.fail_execute:
            self._fail("no such column: missing")
            return -1
        if self.affected is not None:
            return self.affected
        return sql.count("(?")

    def _fail(self, message: str) -> None:
        self._last_error = message
        if self.error_mode is ErrorMode.RAISE:
            raise DatabaseError(message)


class AsyncFakeConnection(FakeConnection):
    """Asyncio flavor of FakeConnection."""

    async def begin(self) -> None:  # type: ignore[override]
        FakeConnection.begin(self)

    async def commit(self) -> None:  # type: ignore[override]
        FakeConnection.commit(self)

    async def rollback(self) -> None:  # type: ignore[override]
        FakeConnection.rollback(self)

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:  # type: ignore[override]
        return FakeConnection.execute(self, sql, params)


@pytest.fixture()
def fake_connection() -> FakeConnection:
    """Provide a recording synchronous connection."""
    return FakeConnection()


@pytest.fixture()
def async_fake_connection() -> AsyncFakeConnection:
    """Provide a recording asyncio connection."""
    return AsyncFakeConnection()


@pytest.fixture()
def db_path() -> Iterator[Path]:
    """Provide a temporary SQLite database path with an ``items`` table."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db_file = Path(path)
    conn = sqlite3.connect(db_file)
    try:
        conn.execute(
            """
            CREATE TABLE items (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                qty INTEGER NOT NULL DEFAULT 0 CHECK (qty >= 0)
            )
            """
        )
        conn.commit()
    finally:
        conn.close()
    try:
        yield db_file
    finally:
        for suffix in ("", "-wal", "-shm", "-journal"):
            candidate = Path(str(db_file) + suffix)
            if candidate.exists():
                os.unlink(candidate)


def _read_items(db_file: Path) -> list[tuple[Any, ...]]:
    conn = sqlite3.connect(db_file)
    try:
        return conn.execute("SELECT id, name, qty FROM items ORDER BY id").fetchall()
    finally:
        conn.close()


@pytest.fixture()
def read_items() -> Any:
    """Provide a reader returning every ``items`` row ordered by id."""
    return _read_items
