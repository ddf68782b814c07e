#!/usr/bin/env python3
"""Benchmark Runner for the batch writer.

This script loads synthetic rows into SQLite with several batch sizes and
outputs results in JSON format for easy processing.

Usage:
    python -m benchmarks.runner [--rows N] [--batch-sizes 1,50,500] [--runs N] [--output FILE]

Options:
    --rows N            Rows to insert per run (default: 10000)
    --batch-sizes LIST  Comma-separated batch sizes (default: 1,10,100,500)
    --runs N            Runs per batch size (default: 3)
    --output FILE       Output JSON file (default: benchmark_output.json)
    --database PATH     SQLite file to use instead of an in-memory database
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from datetime import UTC, datetime
from pathlib import Path
from statistics import mean, stdev

from batch_writer import BatchWriter, BatchWriterConfig, SqliteConnection, WriterStats

DEFAULT_BATCH_SIZES = [1, 10, 100, 500]

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS bench_rows (
        id INTEGER PRIMARY KEY,
        label TEXT NOT NULL,
        value REAL
    )
"""


def parse_batch_sizes(raw: str) -> list[int]:
    """Parse a comma-separated list of batch sizes.

    Args:
        raw: Text such as ``"1,10,100"``.

    Returns:
        List of positive batch sizes.
    """
    sizes = [int(part) for part in raw.split(",") if part.strip()]
    if not sizes or any(size < 1 for size in sizes):
        raise ValueError(f"Invalid batch sizes: {raw!r}")
    return sizes


def load_rows(database: str, row_count: int, batch_size: int) -> tuple[float, WriterStats]:
    """Insert ``row_count`` synthetic rows with one writer.

    Args:
        database: SQLite path or ``":memory:"``.
        row_count: Number of rows to insert.
        batch_size: Writer batch size.

    Returns:
        Elapsed seconds and the writer's final stats.
    """
    with SqliteConnection(database) as conn:
        conn.execute(_SCHEMA)
        conn.execute("DELETE FROM bench_rows")
        config = BatchWriterConfig(
            table="bench_rows",
            columns=["id", "label", "value"],
            batch_size=batch_size,
            expected_total_rows=row_count,
        )
        start = time.perf_counter()
        writer = BatchWriter(conn, config)
        writer.insert_all((i, f"row-{i}", i * 0.5) for i in range(row_count))
        elapsed = time.perf_counter() - start
    return elapsed, writer.stats()


def run_benchmark(database: str, row_count: int, batch_size: int, runs: int = 3) -> dict:
    """Run the load several times for one batch size.

    Args:
        database: SQLite path or ``":memory:"``.
        row_count: Rows per run.
        batch_size: Writer batch size.
        runs: Number of runs.

    Returns:
        Dictionary with timing and throughput figures.
    """
    print(f"Running batch_size={batch_size} ({runs} runs)...")
    timings: list[float] = []
    stats: WriterStats | None = None

    for i in range(runs):
        print(f"  Run {i + 1}/{runs}...", end=" ", flush=True)
        elapsed, stats = load_rows(database, row_count, batch_size)
        timings.append(elapsed)
        print(f"{elapsed:.3f}s")

    average = mean(timings) if timings else 0.0
    return {
        "batch_size": batch_size,
        "runs": runs,
        "rows_per_run": row_count,
        "average_time_sec": average,
        "std_dev_sec": stdev(timings) if len(timings) > 1 else 0.0,
        "rows_per_sec": row_count / average if average > 0 else 0.0,
        "statements_per_run": stats.flush_count if stats else 0,
        "rows_completed": stats.rows_completed if stats else 0,
    }


def format_results(results: list[dict]) -> dict:
    """Format final benchmark results with a comparison against the smallest batch.

    Args:
        results: One entry per batch size, in the order run.

    Returns:
        Formatted comparison results.
    """
    baseline = min(results, key=lambda r: r["batch_size"])
    fastest = max(results, key=lambda r: r["rows_per_sec"])
    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "results": results,
        "comparison": {
            "baseline_batch_size": baseline["batch_size"],
            "fastest_batch_size": fastest["batch_size"],
            "speedup_factor": (
                baseline["average_time_sec"] / fastest["average_time_sec"]
                if fastest["average_time_sec"] > 0
                else 0
            ),
        },
    }


def main() -> int:
    """Main entry point for benchmark runner.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    parser = argparse.ArgumentParser(description="Batch size benchmark for the batch writer")
    parser.add_argument("--rows", type=int, default=10_000, help="Rows per run (default: 10000)")
    parser.add_argument(
        "--batch-sizes",
        type=str,
        default=",".join(str(size) for size in DEFAULT_BATCH_SIZES),
        help="Comma-separated batch sizes (default: 1,10,100,500)",
    )
    parser.add_argument("--runs", type=int, default=3, help="Runs per batch size (default: 3)")
    parser.add_argument(
        "--output",
        type=str,
        default="benchmark_output.json",
        help="Output JSON file (default: benchmark_output.json)",
    )
    parser.add_argument("--database", type=str, default=":memory:", help="SQLite database path")

    args = parser.parse_args()

    try:
        batch_sizes = parse_batch_sizes(args.batch_sizes)
        results = [
            run_benchmark(args.database, args.rows, size, runs=args.runs) for size in batch_sizes
        ]
        report = format_results(results)

        output_path = Path(args.output)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)

        print("=" * 50)
        print("BENCHMARK RESULTS")
        print("=" * 50)
        for result in results:
            print(
                f"batch_size={result['batch_size']:>5}: {result['average_time_sec']:.3f}s "
                f"({result['rows_per_sec']:.0f} rows/s, {result['statements_per_run']} statements)"
            )
        print(f"Speedup Factor: {report['comparison']['speedup_factor']:.2f}x")
        print(f"Results saved to: {output_path}")
        print("=" * 50)

        return 0

    except Exception as e:
        print(f"Error running benchmark: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
