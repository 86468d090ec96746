# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Binlog Relay Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification while the stream is running.
"""

from dataclasses import dataclass
from typing import List
import re


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_port(port: int) -> bool:
    return isinstance(port, int) and 0 < port < 65536


def _validate_redis_url(url: str) -> bool:
    return bool(url) and url.lower().startswith(("redis://", "rediss://", "unix://"))


@dataclass(frozen=True)
class RelayConfig:
    """
    Immutable configuration for a binlog relay.

    This configuration is frozen after creation so that the listener and
    the replication source always see the same values.
    """

    # Required: MySQL host acting as replication source
    mysql_host: str

    # MySQL port (default: 3306)
    mysql_port: int = 3306

    # Replication user (needs REPLICATION SLAVE and REPLICATION CLIENT)
    mysql_user: str = "root"

    # Replication password
    mysql_password: str = ""

    # Server id announced to the source; must be unique among its replicas
    server_id: int = 100

    # Redis URL holding the position checkpoint
    redis_url: str = "redis://localhost:6379/0"

    # Redis key of the position checkpoint, one per stream
    position_key: str = "binlog:pos"

    # Field metadata key naming the bound column
    column_tag: str = "db"

    # Fail instead of yielding 0 when an integer field reads a non-numeric column
    strict_numeric: bool = False

    # Keep polling for new binlog events instead of returning at the end
    blocking: bool = True

    # Pause between polls once the reader has caught up with the server
    poll_interval_seconds: float = 0.5

    # Reconnect attempts after the replication connection drops
    reconnect_attempts: int = 3

    # Delay between reconnect attempts, doubled after each failure
    reconnect_backoff_seconds: float = 1.0

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.mysql_host:
            errors.append("mysql_host is required")

        if not _validate_port(self.mysql_port):
            errors.append(f"Invalid mysql_port: {self.mysql_port}")

        if not self.mysql_user:
            errors.append("mysql_user is required")

        if self.server_id < 1:
            errors.append(f"server_id must be >= 1, got {self.server_id}")

        if not _validate_redis_url(self.redis_url):
            errors.append(f"Invalid redis_url: {self.redis_url}")

        if not self.position_key:
            errors.append("position_key is required")

        if not self.column_tag or not _IDENTIFIER.match(self.column_tag):
            errors.append(f"Invalid column_tag: {self.column_tag!r}")

        if self.reconnect_attempts < 0:
            errors.append(f"reconnect_attempts must be >= 0, got {self.reconnect_attempts}")

        if self.reconnect_backoff_seconds < 0:
            errors.append(
                f"reconnect_backoff_seconds must be >= 0, got {self.reconnect_backoff_seconds}"
            )

        if self.poll_interval_seconds <= 0:
            errors.append(f"poll_interval_seconds must be > 0, got {self.poll_interval_seconds}")

        # Raise all errors at once
        if errors:
            from binlog_relay.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def mysql_settings(self) -> dict:
        """Connection settings in the form the replication reader expects."""
        return {
            "host": self.mysql_host,
            "port": self.mysql_port,
            "user": self.mysql_user,
            "passwd": self.mysql_password,
        }

    def with_updates(self, **kwargs) -> "RelayConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return RelayConfig(**current)
