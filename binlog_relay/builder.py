# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Binlog Relay Builder - Functional builders for registries and configuration.

Registry builder functions take a registry dict and return a new dict
with the modification applied (immutable updates). build_registry()
freezes the result into a HandlerRegistry, which is what the listener
runs with:

    registry = build_registry_from_steps(
        lambda r: watch_table(r, "shop.products", Product, ProductHandler()),
        lambda r: watch_table(r, "shop.orders", Order, OrderHandler()),
    )
"""

from typing import Any, Callable, Dict

from binlog_relay.config import RelayConfig
from binlog_relay.exceptions import RegistrationError
from binlog_relay.mapping.shape import RecordShape
from binlog_relay.models import TableIdentity
from binlog_relay.registry import HandlerRegistration, HandlerRegistry, TableHandler


# Type alias for registry builder functions
RegistryDict = Dict[str, Any]
BuilderFunc = Callable[[RegistryDict], RegistryDict]

_CALLBACKS = ("on_insert", "on_update", "on_delete")


def _as_identity(table: TableIdentity | str) -> TableIdentity:
    if isinstance(table, TableIdentity):
        return table
    try:
        return TableIdentity.parse(table)
    except ValueError as e:
        raise RegistrationError(str(e)) from e


def make_registration(
    table: TableIdentity | str,
    record_type: type,
    handler: TableHandler,
    column_tag: str = "db",
) -> HandlerRegistration:
    """
    Validate a handler and build its registration.

    Args:
        table: TableIdentity or "schema.table" key
        record_type: Destination dataclass type
        handler: Object exposing on_insert, on_update and on_delete
        column_tag: Field metadata key holding column names

    Returns:
        HandlerRegistration with the binding table already built

    Raises:
        RegistrationError: If the handler lacks a callback
        ConfigurationError: If record_type is not a dataclass type
    """
    identity = _as_identity(table)
    missing = [name for name in _CALLBACKS if not callable(getattr(handler, name, None))]
    if missing:
        raise RegistrationError(
            f"Handler for {identity.key} is missing callbacks",
            details={"missing": missing},
        )
    shape = RecordShape.from_dataclass(record_type, column_tag=column_tag)
    return HandlerRegistration(identity=identity, shape=shape, handler=handler)


def create_empty_registry(column_tag: str = "db") -> RegistryDict:
    """
    Create an initial empty registry dictionary.

    Args:
        column_tag: Field metadata key holding column names

    Returns:
        Dict with no registrations
    """
    return {"column_tag": column_tag, "registrations": {}}


def watch_table(
    registry: RegistryDict,
    table: TableIdentity | str,
    record_type: type,
    handler: TableHandler,
) -> RegistryDict:
    """
    Register a handler for a table.

    A later registration for the same table replaces the earlier one.

    Args:
        registry: Current registry dictionary
        table: TableIdentity or "schema.table" key
        record_type: Destination dataclass type
        handler: Callbacks receiving typed records

    Returns:
        New registry dictionary with the table registered
    """
    registration = make_registration(table, record_type, handler, registry["column_tag"])
    registrations = {**registry["registrations"], registration.identity: registration}
    return {**registry, "registrations": registrations}


def unwatch_table(registry: RegistryDict, table: TableIdentity | str) -> RegistryDict:
    """
    Remove a table's registration if present.

    Args:
        registry: Current registry dictionary
        table: TableIdentity or "schema.table" key

    Returns:
        New registry dictionary without the table
    """
    identity = _as_identity(table)
    registrations = {
        key: value for key, value in registry["registrations"].items() if key != identity
    }
    return {**registry, "registrations": registrations}


def build_registry(registry: RegistryDict) -> HandlerRegistry:
    """
    Freeze a registry dictionary into an immutable HandlerRegistry.

    Args:
        registry: Registry dictionary built using builder functions

    Returns:
        Immutable HandlerRegistry
    """
    return HandlerRegistry(registry["registrations"])


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    Args:
        *funcs: Builder functions to compose

    Returns:
        A single function that applies all functions in sequence
    """

    def composed(registry: RegistryDict) -> RegistryDict:
        result = registry
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_registry_from_steps(*steps: BuilderFunc, column_tag: str = "db") -> HandlerRegistry:
    """
    Build a registry by applying a sequence of builder functions.

    This is a convenience function that combines pipe() and build_registry().
    """
    return build_registry(pipe(*steps)(create_empty_registry(column_tag)))


def create_config(
    mysql_host: str,
    *,
    mysql_port: int = 3306,
    mysql_user: str = "root",
    mysql_password: str = "",
    redis_url: str | None = None,
    position_key: str | None = None,
    server_id: int | None = None,
    column_tag: str | None = None,
    **kwargs: Any,
) -> RelayConfig:
    """
    Create relay configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Args:
        mysql_host: Replication source host (required)
        mysql_port: Replication source port (default: 3306)
        mysql_user: Replication user (default: "root")
        mysql_password: Replication password (default: "")
        redis_url: Redis URL for the position checkpoint
        position_key: Redis key of the checkpoint (default: "binlog:pos")
        server_id: Replica server id (default: 100)
        column_tag: Field metadata key naming columns (default: "db")
        **kwargs: Additional configuration options

    Returns:
        Validated, immutable RelayConfig instance

    Example:
        config = create_config(
            "127.0.0.1",
            mysql_password="secret",
            redis_url="redis://localhost:6379/0",
            position_key="binlog:pos",
        )
    """
    values: Dict[str, Any] = {
        "mysql_host": mysql_host,
        "mysql_port": mysql_port,
        "mysql_user": mysql_user,
        "mysql_password": mysql_password,
    }

    if redis_url:
        values["redis_url"] = redis_url

    if position_key:
        values["position_key"] = position_key

    if server_id is not None:
        values["server_id"] = server_id

    if column_tag:
        values["column_tag"] = column_tag

    # Apply any additional kwargs
    for key, value in kwargs.items():
        if key in RelayConfig.__dataclass_fields__:
            values[key] = value

    return RelayConfig(**values)
