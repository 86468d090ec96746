# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MySQL Replication Source Tests.

The binlog reader and the MySQL connection are replaced with in-memory
fakes; events are real pymysqlreplication event classes with their
decoded attributes filled in.
"""

import datetime
import json
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, List

import pytest
from pymysqlreplication.constants import FIELD_TYPE
from pymysqlreplication.event import RotateEvent, XidEvent
from pymysqlreplication.row_event import DeleteRowsEvent, UpdateRowsEvent, WriteRowsEvent

import binlog_relay.cdc.mysql as mysql_source
from binlog_relay.cdc import create_replication_source
from binlog_relay.cdc.mysql import BinlogReplicationSource, column_type_for, rows_event_to_record
from binlog_relay.builder import create_config
from binlog_relay.exceptions import ReplicationError
from binlog_relay.mapping import RecordMapper, RecordShape
from binlog_relay.models import ColumnType, RowAction, StreamPosition, TableIdentity

from conftest import PRODUCTS, Product, RecordingHandler


COLUMNS = [
    SimpleNamespace(name="id", type=FIELD_TYPE.LONG),
    SimpleNamespace(name="title", type=FIELD_TYPE.VARCHAR),
    SimpleNamespace(name="price", type=FIELD_TYPE.DOUBLE),
    SimpleNamespace(name="status", type=FIELD_TYPE.ENUM, enum_values=["", "A", "B", "C"]),
    SimpleNamespace(name="is_active", type=FIELD_TYPE.TINY),
    SimpleNamespace(name="tags", type=FIELD_TYPE.JSON),
]


def _values(pk: int, title: str = "Blue Train") -> dict:
    return {
        "id": pk,
        "title": title,
        "price": 19.5,
        "status": "B",
        "is_active": 1,
        "tags": {b"genre": [b"jazz"]},
    }


def _rows_event(cls: type, rows: List[dict], identity: TableIdentity = PRODUCTS) -> Any:
    # Class attributes shadow the reader's lazily decoded properties
    fake = type(
        f"Fake{cls.__name__}",
        (cls,),
        {
            "__init__": lambda self: None,
            "schema": identity.schema,
            "table": identity.table,
            "columns": COLUMNS,
            "rows": rows,
        },
    )
    return fake()


def _rotate(name: str, position: int) -> RotateEvent:
    event = RotateEvent.__new__(RotateEvent)
    event.next_binlog = name
    event.position = position
    return event


def _xid() -> XidEvent:
    event = XidEvent.__new__(XidEvent)
    event.xid = 1
    return event


class FakeStream:
    """BinLogStreamReader stand-in walking a list of (event, log_pos) steps."""

    def __init__(self, steps, fail_after=None, **kwargs) -> None:
        self.steps = steps
        self.fail_after = fail_after
        self.kwargs = kwargs
        self.log_file = kwargs.get("log_file", "mysql-bin.000001")
        self.log_pos = kwargs.get("log_pos", 4)
        self.closed = False

    def __iter__(self):
        for i, (event, log_pos) in enumerate(self.steps):
            if self.fail_after is not None and i == self.fail_after:
                raise ConnectionResetError("connection reset by peer")
            if isinstance(event, RotateEvent):
                self.log_file = event.next_binlog
            self.log_pos = log_pos
            yield event

    def close(self) -> None:
        self.closed = True


class RecordingSink:
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def on_row_change(self, record) -> None:
        self.events.append(("row", record))

    def on_position_advance(self, position) -> None:
        self.events.append(("pos", position))

    def on_log_rotate(self, position) -> None:
        self.events.append(("rotate", position))


# ============================================================================
# Event conversion
# ============================================================================

def test_column_type_mapping():
    assert column_type_for(FIELD_TYPE.LONGLONG) == ColumnType.NUMBER
    assert column_type_for(FIELD_TYPE.INT24) == ColumnType.MEDIUM_INT
    assert column_type_for(FIELD_TYPE.DOUBLE) == ColumnType.FLOAT
    assert column_type_for(FIELD_TYPE.NEWDECIMAL) == ColumnType.DECIMAL
    assert column_type_for(FIELD_TYPE.ENUM) == ColumnType.ENUM
    assert column_type_for(FIELD_TYPE.BLOB) == ColumnType.STRING
    assert column_type_for(FIELD_TYPE.VAR_STRING) == ColumnType.STRING


def test_insert_event_becomes_positional_record():
    event = SimpleNamespace(
        schema="cd_vinyl",
        table="product_test",
        columns=COLUMNS,
        rows=[{"values": _values(1)}, {"values": _values(2)}],
    )

    record = rows_event_to_record(event, RowAction.INSERT)

    assert record.table.identity == PRODUCTS
    assert record.table.column_names == ["id", "title", "price", "status", "is_active", "tags"]
    assert record.table.columns[3].enum_values == ("A", "B", "C")
    assert record.rows[0][:5] == (1, "Blue Train", 19.5, "B", 1)
    assert json.loads(record.rows[0][5]) == {"genre": ["jazz"]}
    assert len(record.rows) == 2


def test_update_event_flattened_to_before_after_pairs():
    event = SimpleNamespace(
        schema="cd_vinyl",
        table="product_test",
        columns=COLUMNS,
        rows=[
            {"before_values": _values(1, "a"), "after_values": _values(1, "b")},
            {"before_values": _values(2, "c"), "after_values": _values(2, "d")},
        ],
    )

    record = rows_event_to_record(event, RowAction.UPDATE)

    assert [row[1] for row in record.rows] == ["a", "b", "c", "d"]


def test_converted_record_maps_through_router():
    from binlog_relay.builder import build_registry_from_steps, watch_table
    from binlog_relay.router import EventRouter

    handler = RecordingHandler()
    router = EventRouter(build_registry_from_steps(lambda r: watch_table(r, PRODUCTS, Product, handler)))
    values = _values(3)
    values["tags"] = ["jazz"]
    event = SimpleNamespace(schema="cd_vinyl", table="product_test", columns=COLUMNS, rows=[{"values": values}])

    router.route(rows_event_to_record(event, RowAction.INSERT))

    product = handler.calls[0][1][0]
    assert product == Product(id=3, title="Blue Train", price=19.5, status="B", active=True, tags=["jazz"])


def test_temporal_and_decimal_values_arrive_as_mysql_text():
    @dataclass
    class Invoice:
        created_at: str = field(metadata={"db": "created_at"})
        due: str = field(metadata={"db": "due"})
        window: str = field(metadata={"db": "window"})
        amount: str = field(metadata={"db": "amount"})

    columns = [
        SimpleNamespace(name="created_at", type=FIELD_TYPE.DATETIME2),
        SimpleNamespace(name="due", type=FIELD_TYPE.DATE),
        SimpleNamespace(name="window", type=FIELD_TYPE.TIME2),
        SimpleNamespace(name="amount", type=FIELD_TYPE.NEWDECIMAL),
    ]
    values = {
        "created_at": datetime.datetime(2024, 1, 2, 3, 4, 5),
        "due": datetime.date(2024, 2, 1),
        "window": -datetime.timedelta(days=1, hours=2, minutes=3, seconds=4),
        "amount": Decimal("12.50"),
    }
    event = SimpleNamespace(schema="billing", table="invoices", columns=columns, rows=[{"values": values}])

    record = rows_event_to_record(event, RowAction.INSERT)
    mapper = RecordMapper()
    mapper.cache.prepare(record.table.identity)
    invoice = mapper.map_row(RecordShape.from_dataclass(Invoice), record.table, record.rows[0])

    assert invoice == Invoice(
        created_at="2024-01-02 03:04:05",
        due="2024-02-01",
        window="-26:03:04",
        amount="12.50",
    )


# ============================================================================
# Streaming
# ============================================================================

def _install_streams(monkeypatch: pytest.MonkeyPatch, *streams: dict) -> List[FakeStream]:
    created: List[FakeStream] = []
    pending = list(streams)

    def factory(**kwargs):
        planned = pending.pop(0)
        stream = FakeStream(planned["steps"], planned.get("fail_after"), **kwargs)
        created.append(stream)
        return stream

    monkeypatch.setattr(mysql_source, "BinLogStreamReader", factory)
    return created


def test_run_from_forwards_rows_commits_and_rotations(monkeypatch: pytest.MonkeyPatch):
    steps = [
        (_rows_event(WriteRowsEvent, [{"values": _values(1)}]), 300),
        (_xid(), 331),
        (_rows_event(DeleteRowsEvent, [{"values": _values(1)}]), 500),
        (_rows_event(UpdateRowsEvent, [{"before_values": _values(2), "after_values": _values(2, "x")}]), 600),
        (_xid(), 631),
        (_rotate("mysql-bin.000002", 4), 4),
    ]
    created = _install_streams(monkeypatch, {"steps": steps})
    source = BinlogReplicationSource({"host": "db", "port": 3306, "user": "repl", "passwd": ""}, blocking=False)
    sink = RecordingSink()

    source.run_from(StreamPosition("mysql-bin.000001", 120), sink)

    kinds = [kind for kind, _ in sink.events]
    assert kinds == ["row", "pos", "row", "row", "pos", "rotate"]
    assert [e[1].action for e in sink.events if e[0] == "row"] == [
        RowAction.INSERT,
        RowAction.DELETE,
        RowAction.UPDATE,
    ]
    assert sink.events[1][1] == StreamPosition("mysql-bin.000001", 331)
    assert sink.events[5][1] == StreamPosition("mysql-bin.000002", 4)
    assert created[0].kwargs["log_file"] == "mysql-bin.000001"
    assert created[0].kwargs["log_pos"] == 120
    assert created[0].kwargs["resume_stream"] is True
    assert created[0].closed


def test_run_from_reconnects_from_last_commit(monkeypatch: pytest.MonkeyPatch):
    first = [
        (_rows_event(WriteRowsEvent, [{"values": _values(1)}]), 300),
        (_xid(), 331),
        (_rows_event(WriteRowsEvent, [{"values": _values(2)}]), 400),
    ]
    created = _install_streams(
        monkeypatch,
        {"steps": first, "fail_after": 2},
        {"steps": [(_xid(), 500)]},
    )
    source = BinlogReplicationSource(
        {"host": "db", "port": 3306, "user": "repl", "passwd": ""},
        blocking=False,
        reconnect_backoff_seconds=0,
    )
    sink = RecordingSink()

    source.run_from(StreamPosition("mysql-bin.000001", 120), sink)

    assert len(created) == 2
    assert created[1].kwargs["log_pos"] == 331
    assert sink.events[-1] == ("pos", StreamPosition("mysql-bin.000001", 500))


def test_run_from_gives_up_after_reconnect_attempts(monkeypatch: pytest.MonkeyPatch):
    _install_streams(
        monkeypatch,
        {"steps": [(_xid(), 10)], "fail_after": 0},
        {"steps": [(_xid(), 10)], "fail_after": 0},
    )
    source = BinlogReplicationSource(
        {"host": "db", "port": 3306, "user": "repl", "passwd": ""},
        reconnect_attempts=1,
        reconnect_backoff_seconds=0,
    )

    with pytest.raises(ReplicationError):
        source.run_from(StreamPosition("mysql-bin.000001", 4), RecordingSink())


def test_empty_position_starts_at_server_head(monkeypatch: pytest.MonkeyPatch):
    created = _install_streams(monkeypatch, {"steps": []})
    source = BinlogReplicationSource({"host": "db", "port": 3306, "user": "repl", "passwd": ""}, blocking=False)

    source.run_from(StreamPosition.empty(), RecordingSink())

    assert "log_file" not in created[0].kwargs


def test_only_tables_filter_passed_to_reader(monkeypatch: pytest.MonkeyPatch):
    created = _install_streams(monkeypatch, {"steps": []})
    source = BinlogReplicationSource(
        {"host": "db", "port": 3306, "user": "repl", "passwd": ""},
        blocking=False,
        only_tables=[PRODUCTS, TableIdentity("cd_vinyl", "orders")],
    )

    source.run_from(StreamPosition("mysql-bin.000001", 4), RecordingSink())

    assert created[0].kwargs["only_schemas"] == ["cd_vinyl"]
    assert created[0].kwargs["only_tables"] == ["orders", "product_test"]
    assert created[0].kwargs["blocking"] is False


def test_rows_from_unwatched_schema_table_combination_are_skipped(monkeypatch: pytest.MonkeyPatch):
    steps = [
        (_rows_event(WriteRowsEvent, [{"values": _values(1)}], TableIdentity("shop", "product_test")), 100),
        (_rows_event(WriteRowsEvent, [{"values": _values(2)}], TableIdentity("cd_vinyl", "orders")), 200),
        (_rows_event(WriteRowsEvent, [{"values": _values(3)}]), 300),
        (_rows_event(WriteRowsEvent, [{"values": _values(4)}], TableIdentity("shop", "orders")), 400),
    ]
    _install_streams(monkeypatch, {"steps": steps})
    source = BinlogReplicationSource(
        {"host": "db", "port": 3306, "user": "repl", "passwd": ""},
        blocking=False,
        only_tables=[PRODUCTS, TableIdentity("shop", "orders")],
    )
    sink = RecordingSink()

    source.run_from(StreamPosition("mysql-bin.000001", 4), sink)

    assert [record.table.identity for _, record in sink.events] == [
        PRODUCTS,
        TableIdentity("shop", "orders"),
    ]


def test_polling_continues_from_end_of_previous_pass(monkeypatch: pytest.MonkeyPatch):
    first = [
        (_xid(), 331),
        (_rows_event(WriteRowsEvent, [{"values": _values(1)}]), 400),
        (_xid(), 431),
    ]
    created = _install_streams(monkeypatch, {"steps": first}, {"steps": [(_xid(), 500)]})
    source = BinlogReplicationSource(
        {"host": "db", "port": 3306, "user": "repl", "passwd": ""},
        poll_interval_seconds=0.01,
    )

    class StopAfterSecondPass(RecordingSink):
        def on_position_advance(self, position) -> None:
            super().on_position_advance(position)
            if position.pos == 500:
                source.stop()

    sink = StopAfterSecondPass()
    source.run_from(StreamPosition("mysql-bin.000001", 120), sink)

    assert len(created) == 2
    assert created[1].kwargs["log_file"] == "mysql-bin.000001"
    assert created[1].kwargs["log_pos"] == 431
    assert [kind for kind, _ in sink.events] == ["pos", "row", "pos", "pos"]


def test_stop_interrupts_idle_polling(monkeypatch: pytest.MonkeyPatch):
    created = _install_streams(monkeypatch, {"steps": [(_xid(), 50)]})
    source = BinlogReplicationSource(
        {"host": "db", "port": 3306, "user": "repl", "passwd": ""},
        poll_interval_seconds=60,
    )
    caught_up = threading.Event()

    class SignallingSink(RecordingSink):
        def on_position_advance(self, position) -> None:
            super().on_position_advance(position)
            caught_up.set()

    worker = threading.Thread(
        target=source.run_from,
        args=(StreamPosition("mysql-bin.000001", 4), SignallingSink()),
        daemon=True,
    )
    worker.start()
    assert caught_up.wait(5)

    source.stop()
    worker.join(5)

    assert not worker.is_alive()
    assert len(created) == 1
    assert created[0].closed


# ============================================================================
# Head position
# ============================================================================

class FakeCursor:
    def __init__(self, row, fail_first: bool = False) -> None:
        self.row = row
        self.fail_first = fail_first
        self.statements: List[str] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement: str) -> None:
        self.statements.append(statement)
        if self.fail_first and len(self.statements) == 1:
            raise mysql_source.pymysql.err.ProgrammingError(1064, "syntax error")

    def fetchone(self):
        return self.row


class FakeConnection:
    def __init__(self, cursor: FakeCursor) -> None:
        self._cursor = cursor
        self.closed = False

    def cursor(self):
        return self._cursor

    def close(self) -> None:
        self.closed = True


def test_get_current_position(monkeypatch: pytest.MonkeyPatch):
    cursor = FakeCursor(("mysql-bin.000042", 1966, "", "", ""))
    conn = FakeConnection(cursor)
    monkeypatch.setattr(mysql_source.pymysql, "connect", lambda **kwargs: conn)

    config = create_config("db.internal", mysql_user="repl", mysql_password="secret")
    source = create_replication_source(config)

    assert source.get_current_position() == StreamPosition("mysql-bin.000042", 1966)
    assert cursor.statements == ["SHOW MASTER STATUS"]
    assert conn.closed


def test_get_current_position_falls_back_to_binary_log_status(monkeypatch: pytest.MonkeyPatch):
    cursor = FakeCursor(("binlog.000003", 157), fail_first=True)
    monkeypatch.setattr(mysql_source.pymysql, "connect", lambda **kwargs: FakeConnection(cursor))
    source = BinlogReplicationSource({"host": "db", "port": 3306, "user": "repl", "passwd": ""})

    assert source.get_current_position() == StreamPosition("binlog.000003", 157)
    assert cursor.statements == ["SHOW MASTER STATUS", "SHOW BINARY LOG STATUS"]


def test_get_current_position_without_binlog_fails(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(mysql_source.pymysql, "connect", lambda **kwargs: FakeConnection(FakeCursor(None)))
    source = BinlogReplicationSource({"host": "db", "port": 3306, "user": "repl", "passwd": ""})

    with pytest.raises(ReplicationError):
        source.get_current_position()
