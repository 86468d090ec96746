# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for binlog relay tests.

Provides a fake Redis client, a recording table handler, a scripted
replication source and table metadata helpers.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest
import redis

from binlog_relay.models import (
    ColumnMetadata,
    ColumnType,
    RowAction,
    RowChangeRecord,
    StreamPosition,
    TableIdentity,
    TableMetadata,
)

PRODUCTS = TableIdentity("cd_vinyl", "product_test")
ORDERS = TableIdentity("cd_vinyl", "orders")


@dataclass
class Product:
    """Destination record used across the tests."""

    id: int = field(metadata={"db": "id"})
    title: str = field(metadata={"db": "title"})
    price: float = field(metadata={"db": "price"})
    status: str = field(metadata={"db": "status"})
    active: bool = field(metadata={"db": "is_active"})
    tags: List[str] = field(default_factory=list, metadata={"db": "tags"})


@dataclass
class Order:
    id: int = field(metadata={"db": "id"})
    note: str = field(metadata={"db": "note"})
    extra: Optional[Dict[str, Any]] = field(default=None, metadata={"db": "extra"})


def product_table() -> TableMetadata:
    return TableMetadata(
        identity=PRODUCTS,
        columns=(
            ColumnMetadata("id", ColumnType.NUMBER),
            ColumnMetadata("title", ColumnType.STRING),
            ColumnMetadata("price", ColumnType.FLOAT),
            ColumnMetadata("status", ColumnType.ENUM, ("A", "B", "C")),
            ColumnMetadata("is_active", ColumnType.NUMBER),
            ColumnMetadata("tags", ColumnType.JSON),
        ),
    )


def order_table() -> TableMetadata:
    return TableMetadata(
        identity=ORDERS,
        columns=(
            ColumnMetadata("id", ColumnType.NUMBER),
            ColumnMetadata("note", ColumnType.STRING),
            ColumnMetadata("extra", ColumnType.JSON),
        ),
    )


def product_row(pk: int, title: str = "Blue Train", price: float = 19.5) -> tuple:
    return (pk, title.encode("utf-8"), price, 2, 1, '["jazz", "vinyl"]')


def record(table: TableMetadata, action: RowAction, *rows: tuple) -> RowChangeRecord:
    return RowChangeRecord(table=table, action=action, rows=rows)


class RecordingHandler:
    """TableHandler remembering every callback invocation."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def on_insert(self, *records: Any) -> None:
        self.calls.append(("insert", records))

    def on_update(self, *pairs: Any) -> None:
        self.calls.append(("update", pairs))

    def on_delete(self, *records: Any) -> None:
        self.calls.append(("delete", records))


class FakeRedis:
    """Dict-backed stand-in for the two redis.Redis calls the store makes."""

    def __init__(self, fail: bool = False) -> None:
        self.data: Dict[str, bytes] = {}
        self.fail = fail

    def set(self, key: str, value: bytes) -> bool:
        if self.fail:
            raise redis.exceptions.ConnectionError("connection refused")
        self.data[key] = value
        return True

    def get(self, key: str) -> Optional[bytes]:
        if self.fail:
            raise redis.exceptions.ConnectionError("connection refused")
        return self.data.get(key)


class ScriptedSource:
    """
    ReplicationSource replaying a fixed script of notifications.

    Script entries are ("row", RowChangeRecord), ("pos", StreamPosition)
    or ("rotate", StreamPosition). With hold=True run_from blocks after
    the script until stop() is called.
    """

    def __init__(
        self,
        head: StreamPosition = StreamPosition("mysql-bin.000009", 1200),
        script: Optional[list] = None,
        hold: bool = False,
        fail_with: Optional[Exception] = None,
    ) -> None:
        self.head = head
        self.script = list(script or [])
        self.hold = hold
        self.fail_with = fail_with
        self.started_from: Optional[StreamPosition] = None
        self.stopped = threading.Event()

    def get_current_position(self) -> StreamPosition:
        return self.head

    def run_from(self, position: StreamPosition, sink) -> None:
        self.started_from = position
        for kind, payload in self.script:
            if kind == "row":
                sink.on_row_change(payload)
            elif kind == "pos":
                sink.on_position_advance(payload)
            elif kind == "rotate":
                sink.on_log_rotate(payload)
        if self.fail_with is not None:
            raise self.fail_with
        if self.hold:
            self.stopped.wait(5)

    def stop(self) -> None:
        self.stopped.set()


@pytest.fixture
def products() -> TableMetadata:
    return product_table()


@pytest.fixture
def orders() -> TableMetadata:
    return order_table()


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
