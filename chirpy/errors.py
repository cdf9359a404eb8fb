"""Error kinds raised by the record store and its repositories."""
from __future__ import annotations


class StoreError(Exception):
    """Base class for every failure reported by the store."""


class StoreIOError(StoreError, OSError):
    """The database file could not be read or written."""


class FormatError(StoreError, ValueError):
    """The persisted document is not a valid snapshot."""


class NotFoundError(StoreError, LookupError):
    """A lookup by id, email or token found nothing."""


class ConflictError(StoreError):
    """The operation would break a uniqueness constraint."""


class UnauthorizedError(StoreError):
    """The supplied credentials do not match a stored account."""


__all__ = [
    "StoreError",
    "StoreIOError",
    "FormatError",
    "NotFoundError",
    "ConflictError",
    "UnauthorizedError",
]
