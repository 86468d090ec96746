# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Row Value Coercer - Convert raw column values into field values.

Conversion rules per destination kind:

- integer: declared numeric column and integer raw value, otherwise 0
- float: declared float column required, otherwise CoercionError
- string: enum ordinals are 1-based into the column's enum values,
  bytes are decoded as UTF-8, anything else becomes ""
- boolean: integer coercion equals 1
- structured: string coercion decoded as JSON into the field's type

The integer path is lenient while the float path is strict. Pass
strict_numeric=True to make the integer path fail on a declared type
mismatch as well.
"""

from typing import Any

from pydantic import ValidationError

from binlog_relay.exceptions import CoercionError
from binlog_relay.mapping.shape import FieldBinding, FieldKind
from binlog_relay.models import NUMERIC_COLUMN_TYPES, ColumnMetadata, ColumnType


class RowValueCoercer:
    """Tagged coercion over the closed set of FieldKind values."""

    def __init__(self, strict_numeric: bool = False) -> None:
        self.strict_numeric = strict_numeric

    def coerce(self, binding: FieldBinding, column: ColumnMetadata, raw: Any) -> Any:
        """
        Coerce a raw column value into the value of a destination field.

        Args:
            binding: Destination field binding
            column: Metadata of the source column
            raw: Raw positional value from the row

        Returns:
            Value of the field's semantic type

        Raises:
            CoercionError: If the value cannot be converted
        """
        if binding.kind == FieldKind.INTEGER:
            return self.to_int(column, raw)
        if binding.kind == FieldKind.FLOAT:
            return self.to_float(column, raw)
        if binding.kind == FieldKind.STRING:
            return self.to_str(column, raw)
        if binding.kind == FieldKind.BOOLEAN:
            return self.to_bool(column, raw)
        return self.to_structured(binding, column, raw)

    def to_int(self, column: ColumnMetadata, raw: Any) -> int:
        if column.type not in NUMERIC_COLUMN_TYPES:
            if self.strict_numeric:
                raise CoercionError(
                    f"Column {column.name} is not numeric",
                    details={"column": column.name, "type": column.type.value},
                )
            return 0
        if isinstance(raw, int) and not isinstance(raw, bool):
            return int(raw)
        return 0

    def to_float(self, column: ColumnMetadata, raw: Any) -> float:
        if column.type != ColumnType.FLOAT:
            raise CoercionError(
                f"Column {column.name} is not a float column",
                details={"column": column.name, "type": column.type.value},
            )
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return float(raw)
        return 0.0

    def to_str(self, column: ColumnMetadata, raw: Any) -> str:
        if column.type == ColumnType.ENUM:
            return self._enum_label(column, raw)
        if isinstance(raw, (bytes, bytearray)):
            return bytes(raw).decode("utf-8", errors="replace")
        if isinstance(raw, str):
            return raw
        return ""

    def to_bool(self, column: ColumnMetadata, raw: Any) -> bool:
        return self.to_int(column, raw) == 1

    def to_structured(self, binding: FieldBinding, column: ColumnMetadata, raw: Any) -> Any:
        if raw is None:
            if binding.optional:
                return None
            raise CoercionError(
                f"Column {column.name} is NULL but field {binding.name} is not optional",
                details={"column": column.name, "field": binding.name},
            )

        text = self.to_str(column, raw)
        try:
            return binding.adapter.validate_json(text)
        except ValidationError as e:
            raise CoercionError(
                f"Cannot decode column {column.name} into field {binding.name}",
                details={
                    "column": column.name,
                    "field": binding.name,
                    "errors": e.errors(include_url=False),
                },
            ) from e

    def _enum_label(self, column: ColumnMetadata, raw: Any) -> str:
        if not column.enum_values or raw is None:
            return ""
        # Sources that already resolved the label hand over the text
        if isinstance(raw, str):
            return raw
        if isinstance(raw, (bytes, bytearray)):
            return bytes(raw).decode("utf-8", errors="replace")
        if not isinstance(raw, int) or isinstance(raw, bool):
            raise CoercionError(
                f"Enum column {column.name} carries a non-ordinal value",
                details={"column": column.name, "value": repr(raw)},
            )
        if raw == 0:
            return ""
        if raw < 0 or raw > len(column.enum_values):
            raise CoercionError(
                f"Enum ordinal {raw} out of range for column {column.name}",
                details={"column": column.name, "ordinal": raw, "values": len(column.enum_values)},
            )
        return column.enum_values[raw - 1]
