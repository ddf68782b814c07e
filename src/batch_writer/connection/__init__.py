"""Connection protocols and database adapters."""

from batch_writer.connection.async_sqlite import AiosqliteConnection
from batch_writer.connection.base import AsyncConnection, AsyncRowSource, Connection, Row, RowSource
from batch_writer.connection.sqlite import SqliteConnection

__all__ = [
    "AiosqliteConnection",
    "AsyncConnection",
    "AsyncRowSource",
    "Connection",
    "Row",
    "RowSource",
    "SqliteConnection",
]
