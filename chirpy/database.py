"""Entry point to the record store: one file, three repositories."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import default_database_path
from .repositories import MessageRepository, RevocationRepository, UserRepository
from .storage import JSONFileStore


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return default_database_path()


class Database:
    """Owns the JSON store and the repositories that share it."""

    def __init__(self, path: Path) -> None:
        self._store = JSONFileStore(path)
        self.messages = MessageRepository(self._store)
        self.users = UserRepository(self._store)
        self.revocations = RevocationRepository(self._store)

    @property
    def path(self) -> Path:
        return self._store.path

    @property
    def store(self) -> JSONFileStore:
        return self._store

    def initialize(self) -> None:
        """Create the database file on first run and reseed identifier counters."""

        self._store.initialize()


__all__ = ["Database", "resolve_database_path"]
