"""Tests for AsyncBatchWriter against a recording connection."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest

from batch_writer import (
    AsyncBatchWriter,
    BatchWriterConfig,
    CommitError,
    ErrorMode,
    StatementExecutionError,
    TransactionStartError,
    WriterClosedError,
    WriterState,
)


def make_config(**overrides: Any) -> BatchWriterConfig:
    options: dict[str, Any] = {
        "table": "items",
        "columns": ["id", "name"],
        "batch_size": 3,
        "fail_fast": True,
        "use_transaction": True,
    }
    options.update(overrides)
    return BatchWriterConfig(**options)


async def async_rows(count: int) -> AsyncIterator[tuple[int, str]]:
    for i in range(count):
        await asyncio.sleep(0)
        yield (i, f"row{i}")


class TestAsyncSession:
    """Tests for opening and closing the async session."""

    @pytest.mark.asyncio
    async def test_construction_does_not_touch_connection(self, async_fake_connection) -> None:
        """The session opens lazily."""
        AsyncBatchWriter(async_fake_connection, make_config())
        assert async_fake_connection.calls == []
        assert async_fake_connection.error_mode is ErrorMode.SILENT

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_finalizes(self, async_fake_connection) -> None:
        """``async with`` begins, then commits on a clean exit."""
        async with AsyncBatchWriter(async_fake_connection, make_config()) as writer:
            assert async_fake_connection.error_mode is ErrorMode.RAISE
            await writer.write((1, "a"))
        assert async_fake_connection.calls == ["begin", "execute", "commit"]
        assert writer.state is WriterState.CLOSED
        assert async_fake_connection.error_mode is ErrorMode.SILENT

    @pytest.mark.asyncio
    async def test_first_write_opens_session(self, async_fake_connection) -> None:
        """Writing without ``open()`` begins the transaction first."""
        writer = AsyncBatchWriter(async_fake_connection, make_config())
        await writer.write((1, "a"))
        assert async_fake_connection.calls == ["begin"]
        await writer.close()
        assert async_fake_connection.calls == ["begin", "execute", "commit"]

    @pytest.mark.asyncio
    async def test_transaction_start_failure(self, async_fake_connection) -> None:
        """A failed begin is always fatal."""
        async_fake_connection.fail_begin = True
        writer = AsyncBatchWriter(async_fake_connection, make_config(fail_fast=False))
        with pytest.raises(TransactionStartError):
            await writer.open()
        assert writer.state is WriterState.ABORTED
        assert async_fake_connection.error_mode is ErrorMode.SILENT

    @pytest.mark.asyncio
    async def test_exception_in_block_rolls_back(self, async_fake_connection) -> None:
        """An exception inside ``async with`` rolls back."""
        with pytest.raises(RuntimeError, match="boom"):
            async with AsyncBatchWriter(async_fake_connection, make_config()) as writer:
                await writer.write((1, "a"))
                raise RuntimeError("boom")
        assert async_fake_connection.calls == ["begin", "rollback"]
        assert writer.state is WriterState.ABORTED

    @pytest.mark.asyncio
    async def test_unopened_writer_leaves_caller_transaction(self, async_fake_connection) -> None:
        """A writer that never began does not roll back someone else's transaction."""
        await async_fake_connection.begin()
        writer = AsyncBatchWriter(async_fake_connection, make_config())
        await writer.__aexit__(RuntimeError, RuntimeError("boom"), None)
        assert async_fake_connection.calls == ["begin"]
        assert async_fake_connection.in_transaction
        assert writer.state is WriterState.ABORTED
        assert async_fake_connection.error_mode is ErrorMode.SILENT


class TestAsyncBuffering:
    """Tests for async buffering and thresholds."""

    @pytest.mark.asyncio
    async def test_auto_flush_every_batch(self, async_fake_connection) -> None:
        """Each full batch becomes one statement."""
        async with AsyncBatchWriter(async_fake_connection, make_config(batch_size=2)) as writer:
            count = await writer.write_many([(i, "x") for i in range(4)])
            assert count == 4
            assert len(async_fake_connection.statements) == 2
        assert writer.requested_count == 4
        assert writer.completed_count == 4

    @pytest.mark.asyncio
    async def test_expected_total_finalizes(self, async_fake_connection) -> None:
        """Reaching expected_total_rows commits without an explicit flush."""
        writer = AsyncBatchWriter(
            async_fake_connection, make_config(batch_size=10, expected_total_rows=3)
        )
        await writer.write_many([(1, "a"), (2, "b"), (3, "c")])
        assert async_fake_connection.calls == ["begin", "execute", "commit"]
        assert writer.is_closed

    @pytest.mark.asyncio
    async def test_insert_all_from_async_iterable(self, async_fake_connection) -> None:
        """insert_all drains an async source, then finalizes."""
        writer = AsyncBatchWriter(async_fake_connection, make_config(batch_size=2))
        consumed = await writer.insert_all(async_rows(5))
        assert consumed == 5
        assert async_fake_connection.calls == ["begin", "execute", "execute", "execute", "commit"]
        with pytest.raises(WriterClosedError):
            await writer.write((9, "z"))

    @pytest.mark.asyncio
    async def test_concurrent_writes_are_serialized(self, async_fake_connection) -> None:
        """Concurrent writers never lose or duplicate rows."""
        async with AsyncBatchWriter(async_fake_connection, make_config(batch_size=7)) as writer:

            async def write_range(start: int) -> None:
                for i in range(start, start + 20):
                    await writer.write((i, "x"))

            await asyncio.gather(write_range(0), write_range(20), write_range(40))

        written = [params[i] for _, params in async_fake_connection.statements for i in range(0, len(params), 2)]
        assert sorted(written) == list(range(60))
        assert writer.requested_count == 60

    @pytest.mark.asyncio
    async def test_set_batch_size_flushes(self, async_fake_connection) -> None:
        """Shrinking the batch size below the buffer flushes it."""
        async with AsyncBatchWriter(async_fake_connection, make_config(batch_size=10)) as writer:
            await writer.write_many([(1, "a"), (2, "b")])
            await writer.set_batch_size(2)
            assert writer.pending_rows == ()
            assert len(async_fake_connection.statements) == 1


class TestAsyncErrors:
    """Tests for async error handling."""

    @pytest.mark.asyncio
    async def test_fail_fast_rolls_back(self, async_fake_connection) -> None:
        """A failed flush rolls back and raises."""
        async_fake_connection.fail_execute = True
        writer = AsyncBatchWriter(async_fake_connection, make_config(batch_size=1))
        with pytest.raises(StatementExecutionError):
            await writer.write((1, "a"))
        assert async_fake_connection.calls == ["begin", "execute", "rollback"]
        assert writer.state is WriterState.ABORTED

    @pytest.mark.asyncio
    async def test_report_and_continue(self, async_fake_connection) -> None:
        """Without fail_fast the failure is swallowed and writes continue."""
        writer = AsyncBatchWriter(async_fake_connection, make_config(batch_size=1, fail_fast=False))
        async_fake_connection.fail_execute = True
        await writer.write((1, "a"))
        async_fake_connection.fail_execute = False
        await writer.write((2, "b"))
        await writer.close()
        assert writer.requested_count == 2
        assert writer.completed_count == 1
        assert writer.state is WriterState.CLOSED

    @pytest.mark.asyncio
    async def test_non_database_execute_error_aborts(self, async_fake_connection) -> None:
        """A binding error raised by the driver is treated as a failed statement."""
        async_fake_connection.execute_exception = OverflowError("int too large")
        writer = AsyncBatchWriter(async_fake_connection, make_config(batch_size=1))
        with pytest.raises(StatementExecutionError, match="int too large"):
            await writer.write((2**64, "a"))
        assert async_fake_connection.calls == ["begin", "execute", "rollback"]
        assert writer.state is WriterState.ABORTED
        assert writer.requested_count == 1
        assert async_fake_connection.error_mode is ErrorMode.SILENT

    @pytest.mark.asyncio
    async def test_non_database_execute_error_is_reported(self, async_fake_connection) -> None:
        """Without fail_fast a binding error is counted and writes continue."""
        writer = AsyncBatchWriter(async_fake_connection, make_config(batch_size=1, fail_fast=False))
        async_fake_connection.execute_exception = OverflowError("int too large")
        await writer.write((2**64, "a"))
        assert writer.state is WriterState.OPEN
        assert writer.requested_count == 1

        async_fake_connection.execute_exception = None
        await writer.write((2, "b"))
        await writer.close()
        assert writer.state is WriterState.CLOSED
        assert writer.completed_count == 1
        assert async_fake_connection.calls[-1] == "commit"
        assert async_fake_connection.error_mode is ErrorMode.SILENT

    @pytest.mark.asyncio
    async def test_commit_failure_fail_fast(self, async_fake_connection) -> None:
        """A failed commit rolls back and raises CommitError."""
        writer = AsyncBatchWriter(async_fake_connection, make_config())
        await writer.open()
        async_fake_connection.fail_commit = True
        with pytest.raises(CommitError):
            await writer.flush(final=True)
        assert async_fake_connection.calls == ["begin", "commit", "rollback"]
        assert async_fake_connection.error_mode is ErrorMode.SILENT

    @pytest.mark.asyncio
    async def test_final_flush_idempotent(self, async_fake_connection) -> None:
        """The second terminal flush does nothing."""
        writer = AsyncBatchWriter(async_fake_connection, make_config())
        await writer.flush(final=True)
        await writer.flush(final=True)
        assert async_fake_connection.calls == ["begin", "commit"]
