# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
File Position Store - Stream position checkpoint kept in a local JSON file.

Writes go to a temporary file in the same directory which then replaces
the checkpoint atomically, so a crash never leaves a torn checkpoint.
"""

import os
import tempfile
from pathlib import Path
from threading import Lock

import structlog

from binlog_relay.exceptions import PositionStoreError
from binlog_relay.models import StreamPosition

logger = structlog.get_logger()


class FilePositionStore:
    """Durable position store writing a JSON file atomically."""

    def __init__(self, path: Path | str, *, fsync: bool = False) -> None:
        self.path = Path(path)
        self.fsync = fsync
        self._lock = Lock()

    def update_position(self, position: StreamPosition) -> None:
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._write(position.to_json())
            except OSError as e:
                raise PositionStoreError(
                    f"Failed to persist binlog position: {e}",
                    details={"path": str(self.path), "position": str(position)},
                ) from e

    def get_latest_position(self) -> StreamPosition:
        with self._lock:
            try:
                payload = self.path.read_bytes()
            except FileNotFoundError:
                return StreamPosition.empty()
            except OSError as e:
                raise PositionStoreError(
                    f"Failed to read binlog position: {e}",
                    details={"path": str(self.path)},
                ) from e
        if not payload.strip():
            return StreamPosition.empty()
        return StreamPosition.from_json(payload)

    def _write(self, payload: bytes) -> None:
        fd, temp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(payload)
                tmp.flush()
                if self.fsync:
                    os.fsync(tmp.fileno())
            os.replace(temp_path, self.path)
        except OSError:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        if self.fsync:
            dir_fd = os.open(self.path.parent, os.O_RDONLY)
            try:
                os.fsync(dir_fd)
            finally:
                os.close(dir_fd)
        logger.debug("position_file_written", path=str(self.path))
