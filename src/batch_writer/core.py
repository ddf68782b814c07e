"""Buffering state shared by the synchronous and asynchronous writers.

WriterCore owns everything that does not touch the connection: the row
buffer, the lifetime counters, the state machine and structured logging.
Subclasses supply the I/O.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from batch_writer.connection.base import AsyncConnection, Connection, Row
from batch_writer.errors import RowShapeError, StatementExecutionError, WriterClosedError
from batch_writer.models import (
    BatchWriterConfig,
    ConflictPolicy,
    ErrorMode,
    WriterState,
    WriterStats,
)
from batch_writer.statements import InsertStatement

_TERMINAL_STATES = frozenset({WriterState.CLOSED, WriterState.ABORTED})
_SQL_LOG_LIMIT = 500


class FlushTrigger(Enum):
    """What a buffered write asks the writer to do next."""

    NONE = "none"
    BATCH_FULL = "batch_full"
    TOTAL_REACHED = "total_reached"


@contextmanager
def raised_errors(connection: Connection | AsyncConnection) -> Iterator[ErrorMode]:
    """Switch a connection to ``ErrorMode.RAISE`` until the context exits.

    Args:
        connection: Connection whose error mode is elevated.

    Yields:
        The mode that will be restored on exit.
    """
    previous = connection.error_mode
    connection.error_mode = ErrorMode.RAISE
    try:
        yield previous
    finally:
        connection.error_mode = previous


class WriterCore:
    """Connection-independent part of a batch writer.

    Attributes:
        table: Destination table name.
        columns: Ordered column names.
        state: Current lifecycle state.
    """

    def __init__(self, config: BatchWriterConfig) -> None:
        self._config = config
        self._statement = InsertStatement(
            table=config.table,
            columns=tuple(config.columns),
            conflict_policy=config.conflict_policy,
            dialect=config.dialect,
        )
        self._batch_size: int = config.batch_size  # type: ignore[assignment]
        self._buffer: list[tuple[Any, ...]] = []
        self._requested_count = 0
        self._completed_count = 0
        self._flush_count = 0
        self._failed_flushes = 0
        self._state = WriterState.OPEN
        self._session = ExitStack()
        self._logger = logging.getLogger(f"batch_writer.{config.table}")

    @property
    def table(self) -> str:
        return self._config.table

    @property
    def columns(self) -> tuple[str, ...]:
        return self._statement.columns

    @property
    def conflict_policy(self) -> ConflictPolicy:
        return self._config.conflict_policy

    @property
    def fail_fast(self) -> bool:
        return bool(self._config.fail_fast)

    @property
    def use_transaction(self) -> bool:
        return bool(self._config.use_transaction)

    @property
    def expected_total_rows(self) -> int | None:
        return self._config.expected_total_rows

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def state(self) -> WriterState:
        return self._state

    @property
    def is_closed(self) -> bool:
        """Whether the writer reached CLOSED or ABORTED."""
        return self._state in _TERMINAL_STATES

    @property
    def pending_rows(self) -> tuple[tuple[Any, ...], ...]:
        """Snapshot of the rows waiting for the next flush."""
        return tuple(self._buffer)

    @property
    def requested_count(self) -> int:
        """Rows submitted across all flush attempts, failed ones included."""
        return self._requested_count

    @property
    def completed_count(self) -> int:
        """Rows the database reported as affected."""
        return self._completed_count

    def stats(self) -> WriterStats:
        """Return a snapshot of the writer's counters."""
        return WriterStats(
            rows_requested=self._requested_count,
            rows_completed=self._completed_count,
            flush_count=self._flush_count,
            failed_flushes=self._failed_flushes,
            state=self._state,
        )

    def _check_batch_size(self, size: int) -> None:
        if size < 1:
            raise ValueError(f"batch_size must be at least 1, got {size}")

    def _check_writable(self) -> None:
        if self.is_closed:
            raise WriterClosedError("Cannot write to closed writer")

    def _append(self, row: Row) -> FlushTrigger:
        """Buffer one row and report which threshold, if any, it reached.

        The batch-size check wins over the expected-total check so a single
        write never flushes the same buffer twice.
        """
        self._check_writable()
        values = tuple(row)
        if len(values) != self._statement.column_count:
            raise RowShapeError(
                f"Row has {len(values)} values but {self.table} expects "
                f"{self._statement.column_count} ({', '.join(self.columns)})"
            )
        self._buffer.append(values)

        if len(self._buffer) >= self._batch_size:
            return FlushTrigger.BATCH_FULL
        if self._total_reached():
            return FlushTrigger.TOTAL_REACHED
        return FlushTrigger.NONE

    def _total_reached(self) -> bool:
        """Whether completed plus buffered rows equal ``expected_total_rows``."""
        expected = self._config.expected_total_rows
        return expected is not None and self._completed_count + len(self._buffer) == expected

    def _take_batch(self) -> tuple[str, list[Any], int]:
        """Render the buffered rows into one statement and clear the buffer."""
        count = len(self._buffer)
        sql = self._statement.render(count)
        params = self._statement.flatten(self._buffer)
        self._buffer.clear()
        self._set_state(WriterState.FLUSHING, "flush_started")
        return sql, params, count

    def _record_success(self, count: int, affected: int) -> None:
        self._flush_count += 1
        self._requested_count += count
        self._completed_count += max(affected, 0)
        self._set_state(WriterState.OPEN, "flush_completed")
        self._log(logging.DEBUG, "batch_writer_flush", rows=count, affected=affected)

    def _record_failure(self, count: int, exc: BaseException, sql: str) -> StatementExecutionError:
        """Count a failed flush and build the error raised in fail-fast mode.

        A failed statement contributes nothing to the completed count.
        """
        self._flush_count += 1
        self._failed_flushes += 1
        self._requested_count += count
        self._set_state(WriterState.OPEN, "flush_failed")
        self._log(
            logging.ERROR,
            "batch_writer_flush_failed",
            rows=count,
            error=str(exc),
            sql=sql[:_SQL_LOG_LIMIT],
        )
        return StatementExecutionError(
            f"Batched insert of {count} rows into {self.table} failed: {exc}",
            sql=sql,
            row_count=count,
        )

    def _close_session(self, state: WriterState, trigger: str) -> None:
        """Release the session resources and enter a terminal state."""
        self._buffer.clear()
        try:
            self._session.close()
        finally:
            self._set_state(state, trigger)

    def _set_state(self, state: WriterState, trigger: str) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        if state is WriterState.FLUSHING or previous is WriterState.FLUSHING:
            return
        self._log(
            logging.INFO,
            "batch_writer_state_change",
            from_state=previous.value,
            to_state=state.value,
            trigger=trigger,
        )

    def _log(self, level: int, event: str, **fields: Any) -> None:
        """Emit a structured JSON log entry."""
        if not self._logger.isEnabledFor(level):
            return
        log_entry = {
            "event": event,
            "table": self.table,
            **fields,
            "timestamp": datetime.now(UTC).isoformat(),
            "metrics": {
                "rows_requested": self._requested_count,
                "rows_completed": self._completed_count,
                "pending_rows": len(self._buffer),
            },
        }
        self._logger.log(level, json.dumps(log_entry, default=str))
