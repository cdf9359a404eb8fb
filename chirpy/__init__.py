"""Chirpy: a single-file JSON record store for a small microblogging service."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .errors import (
    ConflictError,
    FormatError,
    NotFoundError,
    StoreError,
    StoreIOError,
    UnauthorizedError,
)
from .models import Message, User


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "ConflictError",
    "Database",
    "FormatError",
    "Message",
    "NotFoundError",
    "StoreError",
    "StoreIOError",
    "UnauthorizedError",
    "User",
    "create_app",
    "resolve_database_path",
]
