"""Domain models for the batch writer.

This module defines the enums, configuration and statistics types shared by the
synchronous and asynchronous writers.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum


class ConflictPolicy(str, Enum):
    """How the destination table treats a row whose unique key already exists.

    Attributes:
        IGNORE_DUPLICATES: Keep the existing row and drop the new one.
        REPLACE_DUPLICATES: Overwrite the existing row with the new one.
    """

    IGNORE_DUPLICATES = "ignore"
    REPLACE_DUPLICATES = "replace"


class Dialect(str, Enum):
    """SQL dialect used to render the insert prefix.

    Attributes:
        MYSQL: ``INSERT IGNORE`` / ``REPLACE`` with backtick-quoted identifiers.
        SQLITE: ``INSERT OR IGNORE`` / ``REPLACE`` with double-quoted identifiers.
    """

    MYSQL = "mysql"
    SQLITE = "sqlite"


class ErrorMode(str, Enum):
    """Error-reporting mode of a connection.

    Attributes:
        SILENT: Failures are recorded in ``last_error`` only.
        WARNING: Failures are recorded and logged.
        RAISE: Failures raise ``DatabaseError``.
    """

    SILENT = "silent"
    WARNING = "warning"
    RAISE = "raise"


class WriterState(str, Enum):
    """Lifecycle state of a writer.

    Attributes:
        OPEN: Accepting writes; the transaction is open if one is configured.
        FLUSHING: A statement is executing.
        CLOSED: A terminal flush completed; no further writes are accepted.
        ABORTED: A fail-fast error rolled the session back.
    """

    OPEN = "open"
    FLUSHING = "flushing"
    CLOSED = "closed"
    ABORTED = "aborted"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BatchWriterConfig:
    """Configuration for BatchWriter and AsyncBatchWriter.

    Unset optional values fall back to the ``BATCH_WRITER_*`` environment
    variables, then to the built-in defaults.

    Attributes:
        table: Name of the destination table.
        columns: Ordered column names; every row must have this many values.
        conflict_policy: Duplicate-key handling for the generated statement.
        batch_size: Rows to buffer before an automatic flush (default: 500).
        fail_fast: Raise on a failed flush instead of logging it (default: True).
        use_transaction: Wrap the session in one transaction (default: True).
        expected_total_rows: Known total row count; reaching it finalizes the session.
        dialect: SQL dialect used to render the statement.
    """

    table: str
    columns: Sequence[str]
    conflict_policy: ConflictPolicy = ConflictPolicy.IGNORE_DUPLICATES
    batch_size: int | None = None
    fail_fast: bool | None = None
    use_transaction: bool | None = None
    expected_total_rows: int | None = None
    dialect: Dialect = Dialect.SQLITE

    def __post_init__(self) -> None:
        self.columns = tuple(self.columns)
        if not self.columns:
            raise ValueError("columns must not be empty")
        if self.batch_size is None:
            self.batch_size = int(os.getenv("BATCH_WRITER_BATCH_SIZE", "500"))
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.fail_fast is None:
            self.fail_fast = _env_bool("BATCH_WRITER_FAIL_FAST", "true")
        if self.use_transaction is None:
            self.use_transaction = _env_bool("BATCH_WRITER_USE_TRANSACTION", "true")
        if self.expected_total_rows is not None and self.expected_total_rows < 0:
            raise ValueError("expected_total_rows must not be negative")
        self.conflict_policy = ConflictPolicy(self.conflict_policy)
        self.dialect = Dialect(self.dialect)


@dataclass(frozen=True, slots=True)
class WriterStats:
    """Snapshot of a writer's counters.

    Attributes:
        rows_requested: Rows submitted to the database across all flush attempts.
        rows_completed: Rows the database reported as affected.
        flush_count: Number of statements executed, failed ones included.
        failed_flushes: Number of statements that raised.
        state: Writer state when the snapshot was taken.
    """

    rows_requested: int
    rows_completed: int
    flush_count: int
    failed_flushes: int
    state: WriterState = field(default=WriterState.OPEN)

    @property
    def rows_dropped(self) -> int:
        """Rows requested but not reported as affected.

        Returns:
            Difference between requested and completed rows, never negative.
        """
        return max(self.rows_requested - self.rows_completed, 0)
