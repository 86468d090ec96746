# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Record Mapper - Populate destination records from positional rows.
"""

from typing import Any, Dict, Sequence

from binlog_relay.exceptions import MappingError
from binlog_relay.mapping.binding import ColumnBindingCache
from binlog_relay.mapping.coercer import RowValueCoercer
from binlog_relay.mapping.shape import RecordShape
from binlog_relay.models import TableMetadata


class RecordMapper:
    """Maps one row into one fresh destination record."""

    def __init__(
        self,
        cache: ColumnBindingCache | None = None,
        coercer: RowValueCoercer | None = None,
    ) -> None:
        self.cache = cache or ColumnBindingCache()
        self.coercer = coercer or RowValueCoercer()

    def map_row(self, shape: RecordShape, table: TableMetadata, row: Sequence[Any]) -> Any:
        """
        Build a destination record from one positional row.

        Fields are processed in declaration order and the first failing
        field aborts the whole record.

        Args:
            shape: Binding table of the destination type
            table: Column metadata of the source table
            row: Positional column values

        Returns:
            A new instance of shape.record_type

        Raises:
            ColumnResolutionError: If a field is bound to a missing column
            CoercionError: If a value cannot be converted
            MappingError: If the row is shorter than the table's columns
        """
        values: Dict[str, Any] = {}
        for binding in shape.fields:
            position = self.cache.resolve(table, binding.column)
            if position >= len(row) or position >= len(table.columns):
                raise MappingError(
                    f"Row has no value for column {binding.column}",
                    details={
                        "table": table.identity.key,
                        "column": binding.column,
                        "position": position,
                        "row_length": len(row),
                    },
                )
            column = table.columns[position]
            try:
                values[binding.name] = self.coercer.coerce(binding, column, row[position])
            except MappingError as e:
                e.details.setdefault("table", table.identity.key)
                e.details.setdefault("field", binding.name)
                raise

        try:
            return shape.build(values)
        except Exception as e:
            raise MappingError(
                f"Cannot construct {shape.record_type.__name__}: {e}",
                details={"table": table.identity.key},
            ) from e
