# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Handler Registry - Table identity to destination shape and callbacks.

Registrations are collected before the stream starts (see
binlog_relay.builder) and frozen into a HandlerRegistry that the router
reads without locking.

Delivery is at-least-once: after a restart every row at or after the last
durable position is replayed, so callbacks must be idempotent.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Protocol

from binlog_relay.mapping.shape import RecordShape
from binlog_relay.models import TableIdentity, UpdatePair


class TableHandler(Protocol):
    """Protocol for per-table change callbacks."""

    def on_insert(self, *records: Any) -> None:
        """Handle newly inserted rows."""
        ...

    def on_update(self, *pairs: UpdatePair) -> None:
        """Handle updated rows as (old, new) pairs in stream order."""
        ...

    def on_delete(self, *records: Any) -> None:
        """Handle deleted rows."""
        ...


def _ignore(*_: Any) -> None:
    return None


@dataclass(frozen=True)
class Callbacks:
    """
    TableHandler built from plain functions.

    Omitted callbacks ignore their events:

        Callbacks(on_insert=lambda *rows: print(rows))
    """

    on_insert: Callable[..., None] = _ignore
    on_update: Callable[..., None] = _ignore
    on_delete: Callable[..., None] = _ignore


@dataclass(frozen=True)
class HandlerRegistration:
    """Destination shape and handler for one table."""

    identity: TableIdentity
    shape: RecordShape
    handler: TableHandler


class HandlerRegistry:
    """Immutable mapping of TableIdentity -> HandlerRegistration."""

    def __init__(self, registrations: Mapping[TableIdentity, HandlerRegistration] | None = None):
        self._registrations = MappingProxyType(dict(registrations or {}))

    def get(self, identity: TableIdentity) -> HandlerRegistration | None:
        return self._registrations.get(identity)

    @property
    def identities(self) -> list[TableIdentity]:
        return list(self._registrations)

    def __contains__(self, identity: object) -> bool:
        return identity in self._registrations

    def __iter__(self) -> Iterator[HandlerRegistration]:
        return iter(self._registrations.values())

    def __len__(self) -> int:
        return len(self._registrations)
