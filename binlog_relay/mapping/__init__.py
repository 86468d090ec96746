# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Row Mapping Layer - Turn untyped rows into typed destination records.
"""

from binlog_relay.mapping.binding import ColumnBindingCache
from binlog_relay.mapping.coercer import RowValueCoercer
from binlog_relay.mapping.mapper import RecordMapper
from binlog_relay.mapping.shape import FieldBinding, FieldKind, RecordShape

__all__ = [
    "ColumnBindingCache",
    "RowValueCoercer",
    "RecordMapper",
    "FieldBinding",
    "FieldKind",
    "RecordShape",
]
