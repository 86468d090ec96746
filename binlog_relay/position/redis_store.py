# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Redis Position Store - Stream position checkpoint kept under one Redis key.

The value is the JSON document {"Name": <binlog file>, "Pos": <offset>}.
"""

import redis
import structlog

from binlog_relay.exceptions import PositionStoreError
from binlog_relay.models import StreamPosition

logger = structlog.get_logger()


class RedisPositionStore:
    """Position store backed by a Redis key."""

    def __init__(self, client: redis.Redis, key: str) -> None:
        self.client = client
        self.key = key

    @classmethod
    def from_url(cls, url: str, key: str) -> "RedisPositionStore":
        """Create a store with its own client for a Redis URL."""
        return cls(redis.Redis.from_url(url), key)

    def update_position(self, position: StreamPosition) -> None:
        """
        Write the position; returns once Redis acknowledged the SET.

        Raises:
            PositionStoreError: If Redis is unreachable or rejects the write
        """
        try:
            self.client.set(self.key, position.to_json())
        except redis.RedisError as e:
            raise PositionStoreError(
                f"Failed to store binlog position: {e}",
                details={"key": self.key, "position": str(position)},
            ) from e
        logger.debug("position_stored", key=self.key, file=position.name, pos=position.pos)

    def get_latest_position(self) -> StreamPosition:
        """
        Read the stored position.

        Returns:
            The stored position, or StreamPosition.empty() if the key is missing

        Raises:
            PositionStoreError: If Redis is unreachable or the payload is invalid
        """
        try:
            payload = self.client.get(self.key)
        except redis.RedisError as e:
            raise PositionStoreError(
                f"Failed to read binlog position: {e}",
                details={"key": self.key},
            ) from e

        if payload is None:
            logger.info("position_not_found", key=self.key)
            return StreamPosition.empty()

        position = StreamPosition.from_json(payload)
        logger.info("position_loaded", key=self.key, file=position.name, pos=position.pos)
        return position
