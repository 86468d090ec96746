# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Event Router - Dispatch row change records to registered handlers.

Each record is mapped completely before any callback runs, and exactly
one callback fires per record:

- insert -> handler.on_insert(*records)
- delete -> handler.on_delete(*records)
- update -> handler.on_update(*UpdatePair(old, new))

Records for tables without a registration are ignored.
"""

from typing import Any, List

import structlog

from binlog_relay.exceptions import DispatchError, RelayError
from binlog_relay.mapping.mapper import RecordMapper
from binlog_relay.models import RowAction, RowChangeRecord, UpdatePair
from binlog_relay.registry import HandlerRegistration, HandlerRegistry

logger = structlog.get_logger()


class EventRouter:
    """Routes decoded row change records to typed table handlers."""

    def __init__(self, registry: HandlerRegistry, mapper: RecordMapper | None = None) -> None:
        self.registry = registry
        self.mapper = mapper or RecordMapper()
        for registration in registry:
            self.mapper.cache.prepare(registration.identity)

    def route(self, record: RowChangeRecord) -> None:
        """
        Map and dispatch one row change record.

        Args:
            record: Decoded record from the replication source

        Raises:
            RelayError: If mapping fails, the action is unknown, or the
                handler raised (as DispatchError)
        """
        identity = record.table.identity
        registration = self.registry.get(identity)
        if registration is None:
            return

        try:
            self._dispatch(registration, record)
        except RelayError:
            raise
        except Exception as e:
            raise DispatchError(
                f"Dispatch failed for {identity.key}: {type(e).__name__}: {e}",
                details={"table": identity.key, "action": str(record.action)},
            ) from e

    def _dispatch(self, registration: HandlerRegistration, record: RowChangeRecord) -> None:
        action = record.action
        handler = registration.handler

        if action == RowAction.UPDATE:
            pairs = self._map_update_pairs(registration, record)
            if pairs:
                handler.on_update(*pairs)
                logger.debug("rows_dispatched", table=registration.identity.key, action="update", count=len(pairs))
            return

        if action not in (RowAction.INSERT, RowAction.DELETE):
            raise DispatchError(
                "Unknown row action",
                details={"table": registration.identity.key, "action": repr(action)},
            )

        records: List[Any] = [
            self.mapper.map_row(registration.shape, record.table, row) for row in record.rows
        ]
        if not records:
            return

        if action == RowAction.INSERT:
            handler.on_insert(*records)
        else:
            handler.on_delete(*records)
        logger.debug("rows_dispatched", table=registration.identity.key, action=action.value, count=len(records))

    def _map_update_pairs(
        self, registration: HandlerRegistration, record: RowChangeRecord
    ) -> List[UpdatePair]:
        rows = record.rows
        if len(rows) % 2:
            raise DispatchError(
                "Update record has an unpaired row image",
                details={"table": registration.identity.key, "rows": len(rows)},
            )

        pairs: List[UpdatePair] = []
        for i in range(0, len(rows), 2):
            old = self.mapper.map_row(registration.shape, record.table, rows[i])
            new = self.mapper.map_row(registration.shape, record.table, rows[i + 1])
            pairs.append(UpdatePair(old=old, new=new))
        return pairs
