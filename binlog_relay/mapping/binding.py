# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Column Binding Cache - Per-table column name to position lookup.

The name->index map for a table is built from the first row change
record seen for that table, exactly once, and then frozen. Readers after
the build never take the lock.
"""

import threading
from types import MappingProxyType
from typing import Dict, Mapping

import structlog

from binlog_relay.errors import explain_unknown_column
from binlog_relay.exceptions import ColumnResolutionError
from binlog_relay.models import TableIdentity, TableMetadata

logger = structlog.get_logger()


class _TableBinding:
    """One-time initialised column index for a single table."""

    __slots__ = ("lock", "index")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.index: Mapping[str, int] | None = None


class ColumnBindingCache:
    """Lazily built, per-table column name -> column index maps."""

    def __init__(self) -> None:
        self._tables: Dict[TableIdentity, _TableBinding] = {}

    def prepare(self, identity: TableIdentity) -> None:
        """Declare a table so that its binding can be built on first use."""
        if identity not in self._tables:
            self._tables[identity] = _TableBinding()

    def is_built(self, identity: TableIdentity) -> bool:
        entry = self._tables.get(identity)
        return entry is not None and entry.index is not None

    def index_for(self, table: TableMetadata) -> Mapping[str, int]:
        """
        Return the frozen column index of a table, building it on first use.

        Raises:
            ColumnResolutionError: If the table was never prepared
        """
        entry = self._tables.get(table.identity)
        if entry is None:
            raise ColumnResolutionError(
                f"No column binding prepared for table {table.identity.key}",
                details={"table": table.identity.key},
            )

        index = entry.index
        if index is None:
            with entry.lock:
                if entry.index is None:
                    entry.index = self._build_index(table)
                index = entry.index
        return index

    def resolve(self, table: TableMetadata, column: str) -> int:
        """
        Resolve a column name to its position in the table's rows.

        Raises:
            ColumnResolutionError: If the table is unknown or lacks the column
        """
        index = self.index_for(table)
        try:
            return index[column]
        except KeyError:
            raise ColumnResolutionError(
                explain_unknown_column(column, table.identity.key),
                details={"table": table.identity.key, "column": column},
            ) from None

    def _build_index(self, table: TableMetadata) -> Mapping[str, int]:
        index = {column.name: position for position, column in enumerate(table.columns)}
        logger.debug(
            "column_binding_built",
            table=table.identity.key,
            columns=len(index),
        )
        return MappingProxyType(index)
