# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Record Shapes - Explicit field-to-column binding tables.

A shape is built once per destination dataclass when its handler is
registered. Each field is bound to a source column through its field
metadata:

    @dataclass
    class Product:
        title: str = field(metadata={"db": "title"})
        price: float = field(metadata={"db": "price"})
        tags: list[str] = field(default_factory=list, metadata={"db": "tags"})

Fields without metadata bind to the column with the same name.
"""

import dataclasses
import types
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple, Union

from pydantic import TypeAdapter

from binlog_relay.errors import explain_not_a_dataclass
from binlog_relay.exceptions import ConfigurationError


class FieldKind(str, Enum):
    """Semantic kind of a destination field."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    STRUCTURED = "structured"


_SCALAR_KINDS: Dict[Any, FieldKind] = {
    # bool before int: bool is a subclass of int
    bool: FieldKind.BOOLEAN,
    int: FieldKind.INTEGER,
    float: FieldKind.FLOAT,
    str: FieldKind.STRING,
}


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    """Return (inner type, is_optional) for ``X | None`` annotations."""
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1 and len(typing.get_args(annotation)) == 2:
            return args[0], True
    return annotation, False


def classify_annotation(annotation: Any) -> FieldKind:
    """Map a field annotation to its FieldKind."""
    inner, _ = _unwrap_optional(annotation)
    for scalar, kind in _SCALAR_KINDS.items():
        if inner is scalar:
            return kind
    return FieldKind.STRUCTURED


@dataclass(frozen=True)
class FieldBinding:
    """Binding of one destination field to one source column."""

    name: str
    column: str
    kind: FieldKind
    annotation: Any
    optional: bool = False
    adapter: TypeAdapter | None = None


@dataclass(frozen=True)
class RecordShape:
    """Destination record type plus its ordered field bindings."""

    record_type: type
    fields: Tuple[FieldBinding, ...]

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(binding.column for binding in self.fields)

    def build(self, values: Dict[str, Any]) -> Any:
        """Create a fresh destination record from field values."""
        return self.record_type(**values)

    @classmethod
    def from_dataclass(cls, record_type: type, column_tag: str = "db") -> "RecordShape":
        """
        Build the binding table for a dataclass.

        Args:
            record_type: Destination dataclass type (not an instance)
            column_tag: Field metadata key holding the column name

        Returns:
            RecordShape with one binding per init field

        Raises:
            ConfigurationError: If record_type is not a dataclass type or
                its annotations cannot be resolved
        """
        if not isinstance(record_type, type) or not dataclasses.is_dataclass(record_type):
            raise ConfigurationError(explain_not_a_dataclass(record_type))

        try:
            hints = typing.get_type_hints(record_type)
        except Exception as e:
            raise ConfigurationError(
                f"Cannot resolve annotations of {record_type.__name__}: {e}",
                details={"record_type": record_type.__qualname__},
            ) from e

        bindings = []
        for f in dataclasses.fields(record_type):
            if not f.init:
                continue
            annotation = hints.get(f.name, Any)
            kind = classify_annotation(annotation)
            inner, optional = _unwrap_optional(annotation)
            adapter = TypeAdapter(annotation) if kind == FieldKind.STRUCTURED else None
            bindings.append(
                FieldBinding(
                    name=f.name,
                    column=f.metadata.get(column_tag) or f.name,
                    kind=kind,
                    annotation=inner,
                    optional=optional,
                    adapter=adapter,
                )
            )

        return cls(record_type=record_type, fields=tuple(bindings))
