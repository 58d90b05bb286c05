"""Exception types raised by the trainer core."""

from __future__ import annotations


class TrainerError(Exception):
    """Base exception for trainer failures."""


class PersistenceError(TrainerError):
    """The backing store could not be read or written."""

    def __init__(self, message: str, collection: str | None = None):
        """Initialize with a message and the collection involved."""
        super().__init__(message)
        self.collection = collection


class InvalidImportError(TrainerError, ValueError):
    """An import bundle is malformed or missing a required field."""

    def __init__(self, field: str, problem: str | None = None):
        """Initialize with the offending field and an optional description."""
        super().__init__(f"Invalid export data: {problem or f'missing field {field!r}'}")
        self.field = field
