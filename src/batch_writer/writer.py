"""Synchronous batch writer.

BatchWriter buffers rows and writes them as multi-row ``INSERT`` statements,
optionally inside a single transaction that spans the whole session.
"""

from __future__ import annotations

import logging
from typing import Any, Self

from batch_writer.connection.base import Connection, Row, RowSource
from batch_writer.core import FlushTrigger, WriterCore, raised_errors
from batch_writer.errors import CommitError, DatabaseError, TransactionStartError
from batch_writer.models import BatchWriterConfig, WriterState


class BatchWriter(WriterCore):
    """Buffered multi-row insert writer.

    Rows are buffered until ``batch_size`` is reached, then sent as one
    statement. A terminal flush commits the session transaction and restores
    the connection's error mode. With ``expected_total_rows`` set, the terminal
    flush happens on its own once that many rows have been written.

    Example:
        ```python
        config = BatchWriterConfig(table="items", columns=["id", "name"], batch_size=100)
        with BatchWriter(SqliteConnection("items.db"), config) as writer:
            writer.write((1, "first"))
            writer.write_many([(2, "second"), (3, "third")])
        print(writer.requested_count, writer.completed_count)
        ```
    """

    def __init__(self, connection: Connection, config: BatchWriterConfig) -> None:
        """Initialize the writer and open the session.

        Args:
            connection: Connection the writer takes exclusive use of.
            config: Writer configuration.

        Raises:
            TransactionStartError: If ``use_transaction`` is set and the
                transaction cannot be opened.
        """
        super().__init__(config)
        self._connection = connection
        self._session.enter_context(raised_errors(connection))
        if self.use_transaction:
            try:
                connection.begin()
            except DatabaseError as exc:
                self._close_session(WriterState.ABORTED, "transaction_start_failed")
                raise TransactionStartError(
                    f"Could not open a transaction for {self.table}: {exc}"
                ) from exc

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Finalize on a clean exit; roll back on an exception."""
        if self.is_closed:
            return
        if exc_type is None:
            self.flush(final=True)
        else:
            self._abort("context_exit_error")

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @batch_size.setter
    def batch_size(self, size: int) -> None:
        self.set_batch_size(size)

    def set_batch_size(self, size: int) -> None:
        """Change the number of rows buffered before an automatic flush.

        If the buffer already holds ``size`` rows or more it is flushed
        immediately.

        Args:
            size: New batch size, at least 1.
        """
        self._check_batch_size(size)
        self._batch_size = size
        if not self.is_closed and len(self._buffer) >= size:
            self.flush()

    def write(self, row: Row) -> None:
        """Buffer one row, flushing if a threshold is reached.

        Args:
            row: One value per configured column, in column order.

        Raises:
            RowShapeError: If the row has the wrong number of values.
            WriterClosedError: If the writer is closed.
            StatementExecutionError: If a triggered flush fails in fail-fast mode.
        """
        trigger = self._append(row)
        if trigger is FlushTrigger.BATCH_FULL:
            self.flush()
            if self._total_reached():
                self.flush(final=True)
        elif trigger is FlushTrigger.TOTAL_REACHED:
            self.flush(final=True)

    def write_many(self, rows: RowSource) -> int:
        """Write rows one at a time.

        Args:
            rows: Rows to write.

        Returns:
            Number of rows written.
        """
        count = 0
        for row in rows:
            self.write(row)
            count += 1
        return count

    def insert_all(self, source: RowSource) -> int:
        """Drain a row source, then finalize the session.

        Args:
            source: Iterable of rows, such as a DB-API cursor. It is read
                until exhausted and is not closed.

        Returns:
            Number of rows consumed from the source.
        """
        count = self.write_many(source)
        self.flush(final=True)
        return count

    def flush(self, final: bool = False) -> None:
        """Write the buffered rows as one statement.

        Args:
            final: Also commit the transaction and close the writer. Calling
                this on a closed writer does nothing.

        Raises:
            StatementExecutionError: If the statement fails in fail-fast mode.
            CommitError: If the commit fails in fail-fast mode.
        """
        if self.is_closed:
            return
        if self._buffer:
            self._flush_buffer()
        if final:
            self._finalize()

    def close(self) -> None:
        """Alias for ``flush(final=True)``."""
        self.flush(final=True)

    def _flush_buffer(self) -> None:
        sql, params, count = self._take_batch()
        try:
            affected = self._connection.execute(sql, params)
        except Exception as exc:
            error = self._record_failure(count, exc, sql)
            if self.fail_fast:
                self._abort("statement_failed")
                raise error from exc
        else:
            self._record_success(count, affected)

    def _finalize(self) -> None:
        try:
            if self.use_transaction:
                self._commit()
        finally:
            if not self.is_closed:
                self._close_session(WriterState.CLOSED, "terminal_flush")

    def _commit(self) -> None:
        try:
            self._connection.commit()
        except DatabaseError as exc:
            self._log(logging.ERROR, "batch_writer_commit_failed", error=str(exc))
            if self.fail_fast:
                self._abort("commit_failed")
                raise CommitError(f"Could not commit {self.table}: {exc}") from exc
        else:
            self._log(logging.INFO, "batch_writer_commit")

    def _abort(self, trigger: str) -> None:
        """Roll back the session transaction and enter ABORTED."""
        try:
            if self.use_transaction and self._connection.in_transaction:
                self._connection.rollback()
                self._log(logging.WARNING, "batch_writer_rollback", trigger=trigger)
        except DatabaseError as exc:
            self._log(logging.ERROR, "batch_writer_rollback_failed", error=str(exc))
        finally:
            self._close_session(WriterState.ABORTED, trigger)
