"""Exception hierarchy shared by the graph, registry, and scanning layers."""

from __future__ import annotations


class SchemaGraphError(Exception):
    """Base class for every error raised by schemagraph."""


class EmptyQueueError(SchemaGraphError):
    """Raised when extracting from an empty priority queue."""


class UnknownTableError(SchemaGraphError, KeyError):
    """Raised by strict lookups of a table name or number that is not registered."""

    def __init__(self, table) -> None:
        super().__init__(table)
        self.table = table

    def __str__(self) -> str:
        return f"Unknown table: {self.table}"


class MalformedDescriptorError(SchemaGraphError):
    """A table descriptor is inconsistent with the rest of the catalog."""


class UserError(SchemaGraphError):
    """An error caused by the caller's request rather than by the system.

    Request handlers should answer these with a client error status.
    """

    status = 400

    def get_status(self) -> int:
        return self.status


class NoPathError(UserError):
    """No foreign-key path connects two tables."""

    def __init__(self, source: str, target: str) -> None:
        super().__init__(f"No path from table '{source}' to table '{target}'")
        self.source = source
        self.target = target


class ScanPolicyError(SchemaGraphError):
    """A scan met a table that the duplicated/ignored policy does not account for."""


class DuplicationError(SchemaGraphError):
    """A row could not be duplicated consistently."""
