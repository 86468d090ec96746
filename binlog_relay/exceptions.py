# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Binlog Relay Exceptions - Custom exceptions for the binlog_relay package.
"""


class RelayError(Exception):
    """Base exception for all binlog relay errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(RelayError):
    """Raised when configuration is invalid."""

    pass


class RegistrationError(ConfigurationError):
    """Raised when a table handler is registered at the wrong time or with a bad shape."""

    pass


class ColumnResolutionError(ConfigurationError):
    """Raised when a field is bound to a column the table does not have."""

    pass


class MappingError(RelayError):
    """Raised when a row cannot be mapped into its destination record."""

    pass


class CoercionError(MappingError):
    """Raised when a column value cannot be coerced into the field type."""

    pass


class DispatchError(RelayError):
    """Raised when a row change record cannot be dispatched to its handler."""

    pass


class PositionStoreError(RelayError):
    """Raised when the position checkpoint cannot be read or written."""

    pass


class ReplicationError(RelayError):
    """Raised when the replication source fails."""

    pass
