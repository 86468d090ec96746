# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Position Layer - Durable checkpoints of binlog stream progress.
"""

from typing import Protocol

from binlog_relay.models import StreamPosition
from binlog_relay.position.file_store import FilePositionStore
from binlog_relay.position.memory import InMemoryPositionStore
from binlog_relay.position.redis_store import RedisPositionStore


class PositionStore(Protocol):
    """Protocol for stream position checkpoints."""

    def update_position(self, position: StreamPosition) -> None:
        """
        Record a position durably.

        Returns only once the backing store acknowledged the write.

        Raises:
            PositionStoreError: If the write fails
        """
        ...

    def get_latest_position(self) -> StreamPosition:
        """
        Return the last durable position.

        Returns StreamPosition.empty() when nothing has been recorded yet.

        Raises:
            PositionStoreError: If the store cannot be read
        """
        ...


__all__ = [
    "PositionStore",
    "FilePositionStore",
    "InMemoryPositionStore",
    "RedisPositionStore",
]
