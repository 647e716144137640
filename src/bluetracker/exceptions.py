"""Exception hierarchy for bluetracker.

Absent results (unknown device, no coordinates, unresolved manufacturer)
are returned as ``None`` or empty collections and never raised.
"""

from __future__ import annotations


class BluetrackerError(Exception):
    """Base exception for all bluetracker errors."""


class StorageError(BluetrackerError):
    """The SQLite engine failed (I/O, schema, constraint violation).

    The failing operation has been rolled back before this is raised; the
    originating ``sqlite3.Error`` is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class ConfigError(BluetrackerError):
    """A reference file or settings file is missing or malformed."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)
