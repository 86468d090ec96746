# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
CDC (Change Data Capture) Layer - Replication sources feeding the relay.
"""

from typing import Protocol, Sequence

from binlog_relay.config import RelayConfig
from binlog_relay.models import RowChangeRecord, StreamPosition, TableIdentity


class RowEventSink(Protocol):
    """Protocol for the receiver of replication notifications."""

    def on_row_change(self, record: RowChangeRecord) -> None:
        """Handle one decoded row change record."""
        ...

    def on_position_advance(self, position: StreamPosition) -> None:
        """Handle a committed position; everything before it is processed."""
        ...

    def on_log_rotate(self, position: StreamPosition) -> None:
        """Handle a switch to the next binlog file."""
        ...


class ReplicationSource(Protocol):
    """Protocol for a replication stream producer."""

    def get_current_position(self) -> StreamPosition:
        """
        Return the source's current head position.

        Raises:
            ReplicationError: If the source cannot be queried
        """
        ...

    def run_from(self, position: StreamPosition, sink: RowEventSink) -> None:
        """
        Stream from position, calling sink for every notification.

        Blocks until stop() is called or the stream fails.

        Raises:
            ReplicationError: If the stream fails for good
        """
        ...

    def stop(self) -> None:
        """Stop streaming; run_from returns shortly after."""
        ...


def create_replication_source(
    config: RelayConfig,
    only_tables: Sequence[TableIdentity] | None = None,
) -> ReplicationSource:
    """
    Create the MySQL binlog replication source for a configuration.

    Args:
        config: Relay configuration
        only_tables: Restrict the stream to these tables (optional)

    Returns:
        A ReplicationSource reading the MySQL binary log
    """
    from binlog_relay.cdc.mysql import BinlogReplicationSource

    return BinlogReplicationSource(
        connection_settings=config.mysql_settings,
        server_id=config.server_id,
        blocking=config.blocking,
        only_tables=only_tables,
        reconnect_attempts=config.reconnect_attempts,
        reconnect_backoff_seconds=config.reconnect_backoff_seconds,
        poll_interval_seconds=config.poll_interval_seconds,
    )


__all__ = [
    "ReplicationSource",
    "RowEventSink",
    "create_replication_source",
]
