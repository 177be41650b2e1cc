"""Error taxonomy for the memories service.

NotFound and Unauthenticated are not exceptions: lookups return ``None`` for
a memory that does not exist or belongs to someone else, and handlers return
a 401 result before any storage call when no principal resolved.
"""
from __future__ import annotations


class MemoriesError(Exception):
    """Base class for all service errors."""


class MemoryValidationError(MemoriesError):
    """Client supplied fields that cannot form a valid memory."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StorageError(MemoriesError):
    """Backing store unreachable or an operation on it failed."""
