"""Domain models exposed by the record store."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Message:
    """A chirp posted by a user."""

    id: int
    author_id: int
    body: str


@dataclass(frozen=True)
class User:
    """Public view of an account. The password hash never leaves the store."""

    id: int
    email: str
    is_privileged: bool = False


__all__ = ["Message", "User"]
