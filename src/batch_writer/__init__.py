"""Batch Writer.

Buffers single-row inserts and writes them as multi-row ``INSERT IGNORE`` /
``REPLACE`` statements, optionally inside one session-wide transaction.
"""

from batch_writer.async_writer import AsyncBatchWriter
from batch_writer.connection import AiosqliteConnection, AsyncConnection, Connection, SqliteConnection
from batch_writer.errors import (
    BatchWriterError,
    CommitError,
    DatabaseError,
    RowShapeError,
    StatementExecutionError,
    TransactionStartError,
    WriterClosedError,
)
from batch_writer.models import (
    BatchWriterConfig,
    ConflictPolicy,
    Dialect,
    ErrorMode,
    WriterState,
    WriterStats,
)
from batch_writer.statements import InsertStatement, quote_identifier
from batch_writer.writer import BatchWriter

__version__ = "0.1.0"

__all__ = [
    "AiosqliteConnection",
    "AsyncBatchWriter",
    "AsyncConnection",
    "BatchWriter",
    "BatchWriterConfig",
    "BatchWriterError",
    "CommitError",
    "Connection",
    "ConflictPolicy",
    "DatabaseError",
    "Dialect",
    "ErrorMode",
    "InsertStatement",
    "RowShapeError",
    "SqliteConnection",
    "StatementExecutionError",
    "TransactionStartError",
    "WriterClosedError",
    "WriterState",
    "WriterStats",
    "quote_identifier",
]
