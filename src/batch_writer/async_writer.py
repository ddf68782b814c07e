"""Asyncio batch writer with the same semantics as BatchWriter."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable
from typing import Any, Self

from batch_writer.connection.base import AsyncConnection, AsyncRowSource, Row
from batch_writer.core import FlushTrigger, WriterCore, raised_errors
from batch_writer.errors import CommitError, DatabaseError, TransactionStartError
from batch_writer.models import BatchWriterConfig, WriterState


class AsyncBatchWriter(WriterCore):
    """Buffered multi-row insert writer for asyncio connections.

    The session (elevated error mode and transaction) is opened by ``open()``,
    which ``__aenter__`` and the first ``write`` call for you. Buffer mutation
    and flushes are serialized with an ``asyncio.Lock``.

    Example:
        ```python
        conn = await AiosqliteConnection.connect("items.db")
        async with AsyncBatchWriter(conn, BatchWriterConfig("items", ["id", "name"])) as writer:
            await writer.write((1, "first"))
            await writer.insert_all(await source_db.execute("SELECT id, name FROM staging"))
        ```
    """

    def __init__(self, connection: AsyncConnection, config: BatchWriterConfig) -> None:
        """Initialize the writer without touching the connection.

        Args:
            connection: Connection the writer takes exclusive use of.
            config: Writer configuration.
        """
        super().__init__(config)
        self._connection = connection
        self._opened = False
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Finalize on a clean exit; roll back on an exception."""
        if exc_type is None:
            await self.flush(final=True)
            return
        async with self._lock:
            if not self.is_closed:
                await self._abort("context_exit_error")

    @property
    def connection(self) -> AsyncConnection:
        return self._connection

    async def open(self) -> None:
        """Elevate the connection's error mode and begin the transaction.

        Raises:
            TransactionStartError: If the transaction cannot be opened.
        """
        async with self._lock:
            await self._open_locked()

    async def _open_locked(self) -> None:
        if self._opened or self.is_closed:
            return
        self._opened = True
        self._session.enter_context(raised_errors(self._connection))
        if self.use_transaction:
            try:
                await self._connection.begin()
            except DatabaseError as exc:
                self._close_session(WriterState.ABORTED, "transaction_start_failed")
                raise TransactionStartError(
                    f"Could not open a transaction for {self.table}: {exc}"
                ) from exc

    async def set_batch_size(self, size: int) -> None:
        """Change the batch size, flushing at once if the buffer is already full.

        Args:
            size: New batch size, at least 1.
        """
        self._check_batch_size(size)
        async with self._lock:
            self._batch_size = size
            if not self.is_closed and len(self._buffer) >= size:
                await self._flush_locked(final=False)

    async def write(self, row: Row) -> None:
        """Buffer one row, flushing if a threshold is reached.

        Args:
            row: One value per configured column, in column order.
        """
        self._check_writable()
        async with self._lock:
            await self._open_locked()
            trigger = self._append(row)
            if trigger is FlushTrigger.BATCH_FULL:
                await self._flush_locked(final=False)
                if self._total_reached():
                    await self._flush_locked(final=True)
            elif trigger is FlushTrigger.TOTAL_REACHED:
                await self._flush_locked(final=True)

    async def write_many(self, rows: AsyncRowSource) -> int:
        """Write rows one at a time.

        Args:
            rows: Rows to write, from a plain or async iterable.

        Returns:
            Number of rows written.
        """
        count = 0
        if isinstance(rows, AsyncIterable):
            async for row in rows:
                await self.write(row)
                count += 1
        else:
            for row in rows:
                await self.write(row)
                count += 1
        return count

    async def insert_all(self, source: AsyncRowSource) -> int:
        """Drain a row source, then finalize the session.

        Args:
            source: Plain or async iterable of rows, such as an ``aiosqlite``
                cursor. It is read until exhausted and is not closed.

        Returns:
            Number of rows consumed from the source.
        """
        count = await self.write_many(source)
        await self.flush(final=True)
        return count

    async def flush(self, final: bool = False) -> None:
        """Write the buffered rows as one statement.

        Args:
            final: Also commit the transaction and close the writer.
        """
        async with self._lock:
            if self.is_closed:
                return
            await self._open_locked()
            await self._flush_locked(final)

    async def close(self) -> None:
        """Alias for ``flush(final=True)``."""
        await self.flush(final=True)

    async def _flush_locked(self, final: bool) -> None:
        if self.is_closed:
            return
        if self._buffer:
            await self._flush_buffer()
        if final:
            await self._finalize()

    async def _flush_buffer(self) -> None:
        sql, params, count = self._take_batch()
        try:
            affected = await self._connection.execute(sql, params)
        except Exception as exc:
            error = self._record_failure(count, exc, sql)
            if self.fail_fast:
                await self._abort("statement_failed")
                raise error from exc
        else:
            self._record_success(count, affected)

    async def _finalize(self) -> None:
        try:
            if self.use_transaction:
                await self._commit()
        finally:
            if not self.is_closed:
                self._close_session(WriterState.CLOSED, "terminal_flush")

    async def _commit(self) -> None:
        try:
            await self._connection.commit()
        except DatabaseError as exc:
            self._log(logging.ERROR, "batch_writer_commit_failed", error=str(exc))
            if self.fail_fast:
                await self._abort("commit_failed")
                raise CommitError(f"Could not commit {self.table}: {exc}") from exc
        else:
            self._log(logging.INFO, "batch_writer_commit")

    async def _abort(self, trigger: str) -> None:
        """Roll back the session transaction and enter ABORTED."""
        try:
            if self._opened and self.use_transaction and self._connection.in_transaction:
                await self._connection.rollback()
                self._log(logging.WARNING, "batch_writer_rollback", trigger=trigger)
        except DatabaseError as exc:
            self._log(logging.ERROR, "batch_writer_rollback_failed", error=str(exc))
        finally:
            self._close_session(WriterState.ABORTED, trigger)
