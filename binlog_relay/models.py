# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Binlog Relay Models - Data structures passed between the replication
source, the router and the position stores.

All models are frozen: a row change record is produced once per
notification by the replication source and is never modified afterwards.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, List, Sequence, Tuple, TypeVar

from binlog_relay.exceptions import PositionStoreError

T = TypeVar("T")


class ColumnType(str, Enum):
    """Declared type of a source column as reported by the replication source."""

    NUMBER = "number"
    FLOAT = "float"
    ENUM = "enum"
    SET = "set"
    STRING = "string"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"
    BIT = "bit"
    JSON = "json"
    DECIMAL = "decimal"
    MEDIUM_INT = "medium_int"
    BINARY = "binary"
    POINT = "point"


# Declared types whose values coerce into integer fields
NUMERIC_COLUMN_TYPES = frozenset({ColumnType.NUMBER, ColumnType.MEDIUM_INT})


class RowAction(str, Enum):
    """Operation kind of a row change record."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class TableIdentity:
    """(schema, table) pair identifying a logical table."""

    schema: str
    table: str

    @property
    def key(self) -> str:
        return f"{self.schema}.{self.table}"

    @classmethod
    def parse(cls, key: str) -> "TableIdentity":
        """Parse a "schema.table" key."""
        schema, sep, table = key.partition(".")
        if not sep or not schema or not table:
            raise ValueError(f"Invalid table key: {key!r}, expected schema.table")
        return cls(schema=schema, table=table)

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class ColumnMetadata:
    """Name, declared type and (for enums) permitted values of one column."""

    name: str
    type: ColumnType = ColumnType.STRING
    enum_values: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TableMetadata:
    """Column layout of a table as carried by a row change record."""

    identity: TableIdentity
    columns: Tuple[ColumnMetadata, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


@dataclass(frozen=True)
class RowChangeRecord:
    """
    One decoded notification from the replication stream.

    Rows are positional tuples ordered like ``table.columns``. For
    updates the rows alternate before/after images of the same row:
    ``[old0, new0, old1, new1, ...]``.
    """

    table: TableMetadata
    action: RowAction
    rows: Sequence[Tuple[Any, ...]] = field(default_factory=tuple)


@dataclass(frozen=True)
class UpdatePair(Generic[T]):
    """Before and after images of one updated row."""

    old: T
    new: T


@dataclass(frozen=True, order=True)
class StreamPosition:
    """
    Binlog file name plus byte offset.

    Everything up to and including this point has been processed and may
    be skipped on resume. Positions order by file name first, which holds
    for MySQL's zero-padded binlog sequence names.
    """

    name: str = ""
    pos: int = 0

    @classmethod
    def empty(cls) -> "StreamPosition":
        """The "no position yet" value returned for a fresh stream."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.name == ""

    def to_json(self) -> bytes:
        return json.dumps({"Name": self.name, "Pos": self.pos}).encode("utf-8")

    @classmethod
    def from_json(cls, payload: bytes | str) -> "StreamPosition":
        try:
            data = json.loads(payload)
            return cls(name=str(data["Name"]), pos=int(data["Pos"]))
        except (ValueError, TypeError, KeyError) as e:
            raise PositionStoreError(
                f"Invalid position payload: {e}",
                details={"payload": payload if isinstance(payload, str) else payload.decode("utf-8", "replace")},
            ) from e

    def __str__(self) -> str:
        return f"{self.name}:{self.pos}"
