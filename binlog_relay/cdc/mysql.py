# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MySQL CDC - Replication source reading the MySQL binary log.

This module turns binary log row events into RowChangeRecords for the
relay, and commit and rotate events into position notifications.

For production use, MySQL must be configured with:
- binlog_format = ROW
- binlog_row_image = FULL
- binlog_row_metadata = FULL (column names in row events)
- log_bin = ON

The user must have REPLICATION SLAVE and REPLICATION CLIENT privileges.
"""

import datetime
import decimal
import json
import threading
from typing import Any, Dict, List, Sequence, Tuple

import pymysql
import structlog
from pymysqlreplication import BinLogStreamReader
from pymysqlreplication.constants import FIELD_TYPE
from pymysqlreplication.event import RotateEvent, XidEvent
from pymysqlreplication.row_event import (
    DeleteRowsEvent,
    UpdateRowsEvent,
    WriteRowsEvent,
)

from binlog_relay.cdc import RowEventSink
from binlog_relay.exceptions import ReplicationError
from binlog_relay.models import (
    ColumnMetadata,
    ColumnType,
    RowAction,
    RowChangeRecord,
    StreamPosition,
    TableIdentity,
    TableMetadata,
)

logger = structlog.get_logger()


_FIELD_TYPES: Dict[int, ColumnType] = {
    FIELD_TYPE.TINY: ColumnType.NUMBER,
    FIELD_TYPE.SHORT: ColumnType.NUMBER,
    FIELD_TYPE.LONG: ColumnType.NUMBER,
    FIELD_TYPE.LONGLONG: ColumnType.NUMBER,
    FIELD_TYPE.YEAR: ColumnType.NUMBER,
    FIELD_TYPE.INT24: ColumnType.MEDIUM_INT,
    FIELD_TYPE.FLOAT: ColumnType.FLOAT,
    FIELD_TYPE.DOUBLE: ColumnType.FLOAT,
    FIELD_TYPE.DECIMAL: ColumnType.DECIMAL,
    FIELD_TYPE.NEWDECIMAL: ColumnType.DECIMAL,
    FIELD_TYPE.ENUM: ColumnType.ENUM,
    FIELD_TYPE.SET: ColumnType.SET,
    FIELD_TYPE.DATETIME: ColumnType.DATETIME,
    FIELD_TYPE.DATETIME2: ColumnType.DATETIME,
    FIELD_TYPE.TIMESTAMP: ColumnType.TIMESTAMP,
    FIELD_TYPE.TIMESTAMP2: ColumnType.TIMESTAMP,
    FIELD_TYPE.DATE: ColumnType.DATE,
    FIELD_TYPE.NEWDATE: ColumnType.DATE,
    FIELD_TYPE.TIME: ColumnType.TIME,
    FIELD_TYPE.TIME2: ColumnType.TIME,
    FIELD_TYPE.BIT: ColumnType.BIT,
    FIELD_TYPE.JSON: ColumnType.JSON,
    FIELD_TYPE.GEOMETRY: ColumnType.POINT,
}


def column_type_for(field_type: int) -> ColumnType:
    """Map a MySQL field type code to its ColumnType; text and blobs are strings."""
    return _FIELD_TYPES.get(field_type, ColumnType.STRING)


def _column_metadata(column: Any) -> ColumnMetadata:
    enum_values = list(getattr(column, "enum_values", None) or ())
    # The reader prepends "" so that ordinal 0 maps to the empty label
    if enum_values and enum_values[0] == "":
        enum_values = enum_values[1:]
    return ColumnMetadata(
        name=column.name,
        type=column_type_for(column.type),
        enum_values=tuple(enum_values),
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {_jsonable(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _mysql_time(value: datetime.timedelta) -> str:
    sign = "-" if value < datetime.timedelta(0) else ""
    total = abs(value)
    hours, rest = divmod(total.days * 86400 + total.seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    text = f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if total.microseconds:
        text += f".{total.microseconds:06d}"
    return text


def _mysql_text(value: Any) -> Any:
    """Render temporal and decimal values the way MySQL prints them."""
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return _mysql_time(value)
    if isinstance(value, decimal.Decimal):
        return format(value, "f")
    return value


def _positional(values: Dict[str, Any], columns: Sequence[ColumnMetadata]) -> Tuple[Any, ...]:
    row: List[Any] = []
    for column in columns:
        value = _mysql_text(values.get(column.name))
        # JSON columns arrive decoded; the relay works on their text form
        if column.type == ColumnType.JSON and value is not None and not isinstance(value, (str, bytes)):
            value = json.dumps(_jsonable(value), default=str)
        row.append(value)
    return tuple(row)


def rows_event_to_record(event: Any, action: RowAction) -> RowChangeRecord:
    """
    Convert a binlog rows event into a RowChangeRecord.

    Update rows are flattened into alternating before/after images.
    """
    columns = tuple(_column_metadata(column) for column in event.columns)
    table = TableMetadata(
        identity=TableIdentity(schema=event.schema, table=event.table),
        columns=columns,
    )

    rows: List[Tuple[Any, ...]] = []
    for row in event.rows:
        if action == RowAction.UPDATE:
            rows.append(_positional(row["before_values"], columns))
            rows.append(_positional(row["after_values"], columns))
        else:
            rows.append(_positional(row["values"], columns))

    return RowChangeRecord(table=table, action=action, rows=tuple(rows))


def _action_for(event: Any) -> RowAction | None:
    if isinstance(event, WriteRowsEvent):
        return RowAction.INSERT
    if isinstance(event, UpdateRowsEvent):
        return RowAction.UPDATE
    if isinstance(event, DeleteRowsEvent):
        return RowAction.DELETE
    return None


class BinlogReplicationSource:
    """ReplicationSource reading a MySQL server's binary log."""

    def __init__(
        self,
        connection_settings: Dict[str, Any],
        server_id: int = 100,
        *,
        blocking: bool = True,
        only_tables: Sequence[TableIdentity] | None = None,
        reconnect_attempts: int = 3,
        reconnect_backoff_seconds: float = 1.0,
        poll_interval_seconds: float = 0.5,
    ) -> None:
        self.connection_settings = connection_settings
        self.server_id = server_id
        self.blocking = blocking
        self.only_tables = list(only_tables or [])
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_backoff_seconds = reconnect_backoff_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._watched = frozenset(self.only_tables)
        self._stopping = threading.Event()
        self._stream: BinLogStreamReader | None = None

    def get_current_position(self) -> StreamPosition:
        """
        Query the source's current binlog file and offset.

        Raises:
            ReplicationError: If the query fails or binary logging is disabled
        """
        settings = self.connection_settings
        try:
            conn = pymysql.connect(
                host=settings["host"],
                port=settings["port"],
                user=settings["user"],
                password=settings.get("passwd", ""),
            )
        except pymysql.MySQLError as e:
            raise ReplicationError(
                f"Failed to connect to MySQL: {e}",
                details={"host": settings["host"], "port": settings["port"]},
            ) from e

        try:
            with conn.cursor() as cursor:
                try:
                    cursor.execute("SHOW MASTER STATUS")
                except pymysql.MySQLError:
                    # MySQL 8.4 renamed the statement
                    cursor.execute("SHOW BINARY LOG STATUS")
                result = cursor.fetchone()
        except pymysql.MySQLError as e:
            raise ReplicationError(f"Failed to read binlog position: {e}") from e
        finally:
            conn.close()

        if not result:
            raise ReplicationError("Could not get binlog position. Is binary logging enabled?")
        return StreamPosition(name=result[0], pos=int(result[1]))

    def run_from(self, position: StreamPosition, sink: RowEventSink) -> None:
        """
        Stream binlog events from position until stopped.

        Each pass reads up to the end of the server's binary log and
        returns. In blocking mode the source then waits
        poll_interval_seconds and reads again from where the pass ended,
        so stop() takes effect within one interval on an idle server.

        Reconnects from the last committed position after a dropped
        connection, up to reconnect_attempts times.

        Raises:
            ReplicationError: When reconnect attempts are exhausted
        """
        resume = position
        failures = 0

        logger.info("binlog_stream_started", file=position.name, pos=position.pos)

        while not self._stopping.is_set():
            stream = self._open_stream(resume)
            try:
                for event in stream:
                    if self._stopping.is_set():
                        break
                    committed = self._handle_event(stream, event, sink)
                    if committed is not None:
                        resume = committed
                    failures = 0
                else:
                    # The server only ships whole transactions, so the end of
                    # a pass is a safe place to continue from
                    if stream.log_file and stream.log_pos:
                        resume = StreamPosition(name=stream.log_file, pos=int(stream.log_pos))
                if not self.blocking:
                    break
                self._stopping.wait(self.poll_interval_seconds)
            except Exception as e:
                if self._stopping.is_set():
                    break
                failures += 1
                if failures > self.reconnect_attempts:
                    raise ReplicationError(
                        f"Binlog stream failed: {e}",
                        details={"position": str(resume), "attempts": failures},
                    ) from e
                delay = self.reconnect_backoff_seconds * (2 ** (failures - 1))
                logger.warning(
                    "binlog_stream_reconnecting",
                    error=str(e),
                    attempt=failures,
                    delay=delay,
                    file=resume.name,
                    pos=resume.pos,
                )
                self._stopping.wait(delay)
            finally:
                stream.close()
                self._stream = None

        logger.info("binlog_stream_stopped", file=resume.name, pos=resume.pos)

    def stop(self) -> None:
        self._stopping.set()
        stream = self._stream
        if stream is not None:
            stream.close()

    def _open_stream(self, position: StreamPosition) -> BinLogStreamReader:
        kwargs: Dict[str, Any] = {}
        if self.only_tables:
            # The reader filters schemas and tables independently; rows from
            # unwatched schema/table combinations are dropped in _handle_event
            kwargs["only_schemas"] = sorted({t.schema for t in self.only_tables})
            kwargs["only_tables"] = sorted({t.table for t in self.only_tables})
        if not position.is_empty:
            kwargs["log_file"] = position.name
            kwargs["log_pos"] = position.pos

        self._stream = BinLogStreamReader(
            connection_settings=self.connection_settings,
            server_id=self.server_id,
            only_events=[WriteRowsEvent, UpdateRowsEvent, DeleteRowsEvent, RotateEvent, XidEvent],
            resume_stream=True,
            blocking=False,
            **kwargs,
        )
        return self._stream

    def _handle_event(self, stream: Any, event: Any, sink: RowEventSink) -> StreamPosition | None:
        """Forward one event to the sink; returns the new resume point, if any."""
        if isinstance(event, RotateEvent):
            position = StreamPosition(name=event.next_binlog, pos=int(event.position))
            sink.on_log_rotate(position)
            return position

        if isinstance(event, XidEvent):
            position = StreamPosition(name=stream.log_file, pos=int(stream.log_pos))
            sink.on_position_advance(position)
            return position

        action = _action_for(event)
        if action is None:
            return None
        if self._watched and TableIdentity(schema=event.schema, table=event.table) not in self._watched:
            logger.debug("rows_event_skipped", schema=event.schema, table=event.table)
            return None
        sink.on_row_change(rows_event_to_record(event, action))
        return None
