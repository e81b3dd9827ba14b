"""Exception taxonomy shared by the watcher modules."""

from __future__ import annotations

from typing import Iterable


class WatcherError(RuntimeError):
    """Base exception type for purchase watcher failures."""


class ConfigError(WatcherError):
    """Raised when required configuration is missing or invalid."""


class WorkbookError(WatcherError):
    """Raised when the watched workbook cannot be used for extraction."""


class WorkbookFormatError(WorkbookError):
    """Raised when the workbook file cannot be parsed."""


class InvalidColumnName(WorkbookError):
    """Raised when a named range points at a malformed column reference."""

    def __init__(self, column: str) -> None:
        super().__init__(f"invalid column name: {column!r}")
        self.column = column


class MissingNamedRangeError(WorkbookError):
    """Raised when named ranges required for extraction are absent."""

    def __init__(self, fields: Iterable[object]) -> None:
        self.fields = tuple(fields)
        labels = ", ".join(str(getattr(f, "value", f)) for f in self.fields)
        super().__init__(f"named ranges not found: {labels}")


class SnapshotError(WatcherError):
    """Raised when the persisted snapshot cannot be encoded or decoded."""


class DeliveryError(WatcherError):
    """Raised when a changeset could not be delivered to the receiver."""


class PreEpochError(ValueError):
    """Raised for date values that fall before the Unix epoch."""


__all__ = [
    "ConfigError",
    "DeliveryError",
    "InvalidColumnName",
    "MissingNamedRangeError",
    "PreEpochError",
    "SnapshotError",
    "WatcherError",
    "WorkbookError",
    "WorkbookFormatError",
]
