# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Binlog Relay - Typed per-table notifications from a MySQL binlog stream.

Consumes row change events from a replication source, maps each row into
an application dataclass, dispatches batches to the handler registered
for the table, and checkpoints the stream position so a restart resumes
where the last durable position left off. Package name: binlog_relay.
"""

__version__ = "0.1.0"

# Configuration and registry creation (user-facing API)
from binlog_relay.builder import (
    build_registry,
    build_registry_from_steps,
    create_config,
    create_empty_registry,
    watch_table,
)

# Listener runtime
from binlog_relay.core import (
    ListenerRuntime,
    RuntimeState,
    create_listener,
    start_listener,
)

# Environment-based configuration
from binlog_relay.env import create_config_from_env

from binlog_relay.models import (
    ColumnMetadata,
    ColumnType,
    RowAction,
    RowChangeRecord,
    StreamPosition,
    TableIdentity,
    TableMetadata,
    UpdatePair,
)
from binlog_relay.registry import Callbacks, TableHandler

__all__ = [
    # Version
    "__version__",
    # Configuration and registry creation
    "create_config",
    "create_config_from_env",
    "create_empty_registry",
    "watch_table",
    "build_registry",
    "build_registry_from_steps",
    # Runtime
    "ListenerRuntime",
    "RuntimeState",
    "create_listener",
    "start_listener",
    # Handlers
    "Callbacks",
    "TableHandler",
    # Models
    "ColumnMetadata",
    "ColumnType",
    "RowAction",
    "RowChangeRecord",
    "StreamPosition",
    "TableIdentity",
    "TableMetadata",
    "UpdatePair",
]
