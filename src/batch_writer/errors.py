"""Exceptions raised by the batch writer and its connection adapters."""

from __future__ import annotations


class BatchWriterError(Exception):
    """Base class for batch writer errors."""

    pass


class DatabaseError(BatchWriterError):
    """Raised by a connection adapter when the underlying driver fails."""

    pass


class TransactionStartError(BatchWriterError):
    """Raised when the session transaction cannot be opened.

    Always fatal: there is nothing buffered yet, so ``fail_fast`` does not apply.
    """

    pass


class StatementExecutionError(BatchWriterError):
    """Raised when a batched insert fails and the writer is fail-fast.

    Attributes:
        sql: The statement that failed.
        row_count: Number of rows the statement carried.
    """

    def __init__(self, message: str, sql: str, row_count: int) -> None:
        super().__init__(message)
        self.sql = sql
        self.row_count = row_count


class CommitError(BatchWriterError):
    """Raised when committing the session transaction fails and the writer is fail-fast."""

    pass


class WriterClosedError(BatchWriterError, RuntimeError):
    """Raised when writing to a writer that has been closed or aborted."""

    pass


class RowShapeError(BatchWriterError, ValueError):
    """Raised when a row does not have one value per configured column."""

    pass
