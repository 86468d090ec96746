# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""Volatile position store for tests and local development."""

from threading import Lock
from typing import List

from binlog_relay.models import StreamPosition


class InMemoryPositionStore:
    """Position store keeping the checkpoint in process memory."""

    def __init__(self, initial: StreamPosition | None = None) -> None:
        self._lock = Lock()
        self._position = initial or StreamPosition.empty()
        self.history: List[StreamPosition] = []

    def update_position(self, position: StreamPosition) -> None:
        with self._lock:
            self._position = position
            self.history.append(position)

    def get_latest_position(self) -> StreamPosition:
        with self._lock:
            return self._position
