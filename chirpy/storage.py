"""Single-file JSON persistence for messages, users and token revocations."""
from __future__ import annotations

import json
import os
import tempfile
import threading
from contextlib import contextmanager, suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Mapping

from .errors import FormatError, StoreIOError
from .models import Message, User

MESSAGES = "messages"
USERS = "users"


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class UserRecord:
    """Stored form of a user, including the password hash."""

    id: int
    email: str
    password_hash: str
    is_privileged: bool = False

    def to_public(self) -> User:
        return User(id=self.id, email=self.email, is_privileged=self.is_privileged)


@dataclass
class Snapshot:
    """Complete in-memory copy of the database file."""

    messages: Dict[int, Message] = field(default_factory=dict)
    users: Dict[int, UserRecord] = field(default_factory=dict)
    emails: Dict[str, int] = field(default_factory=dict)
    revocations: Dict[str, datetime] = field(default_factory=dict)
    next_ids: Dict[str, int] = field(default_factory=dict)


def encode_snapshot(snapshot: Snapshot) -> Dict[str, object]:
    """Convert a snapshot into the JSON document stored on disk."""

    return {
        "messages": {
            str(message.id): {
                "id": message.id,
                "author_id": message.author_id,
                "body": message.body,
            }
            for message in snapshot.messages.values()
        },
        "users": {
            str(record.id): {
                "id": record.id,
                "email": record.email,
                "is_privileged": record.is_privileged,
                "password_hash": record.password_hash,
            }
            for record in snapshot.users.values()
        },
        "emails": dict(snapshot.emails),
        "revocations": {
            token: _serialize_datetime(revoked_at)
            for token, revoked_at in snapshot.revocations.items()
        },
        "next_ids": dict(snapshot.next_ids),
    }


def _require_bool(value: object, name: str) -> bool:
    if not isinstance(value, bool):
        raise FormatError(f"Field '{name}' must be a JSON boolean, got {value!r}")
    return value


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise FormatError(f"Section '{name}' must be a JSON object")
    return value


def decode_snapshot(raw: object) -> Snapshot:
    """Validate a decoded JSON document and build a :class:`Snapshot`."""

    if not isinstance(raw, dict):
        raise FormatError("Database document must be a JSON object")

    snapshot = Snapshot()
    try:
        for key, item in _section(raw, "messages").items():
            message = Message(
                id=int(item["id"]),
                author_id=int(item["author_id"]),
                body=str(item["body"]),
            )
            if message.id != int(key):
                raise FormatError(f"Message stored under key {key} has id {message.id}")
            snapshot.messages[message.id] = message

        for key, item in _section(raw, "users").items():
            record = UserRecord(
                id=int(item["id"]),
                email=str(item["email"]),
                password_hash=str(item.get("password_hash") or ""),
                is_privileged=_require_bool(item.get("is_privileged", False), "is_privileged"),
            )
            if record.id != int(key):
                raise FormatError(f"User stored under key {key} has id {record.id}")
            snapshot.users[record.id] = record

        snapshot.emails = {
            str(email): int(user_id) for email, user_id in _section(raw, "emails").items()
        }
        snapshot.revocations = {
            str(token): _parse_datetime(str(revoked_at))
            for token, revoked_at in _section(raw, "revocations").items()
        }
        snapshot.next_ids = {
            str(name): int(value) for name, value in _section(raw, "next_ids").items()
        }
    except FormatError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise FormatError(f"Malformed database record: {exc}") from exc

    _check_email_index(snapshot)
    return snapshot


def _check_email_index(snapshot: Snapshot) -> None:
    if len(snapshot.emails) != len(snapshot.users):
        raise FormatError("Email index does not match the stored users")
    for email, user_id in snapshot.emails.items():
        record = snapshot.users.get(user_id)
        if record is None or record.email != email:
            raise FormatError(f"Email index entry {email!r} points at user {user_id} which does not own it")


class ReadWriteLock:
    """Shared/exclusive lock that lets queued writers go before new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class IdSequence:
    """Monotonic identifier counter for one collection."""

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self._lock = threading.Lock()

    def peek(self) -> int:
        with self._lock:
            return self._next

    def allocate(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def advance_to(self, value: int) -> None:
        with self._lock:
            if value > self._next:
                self._next = value


class JSONFileStore:
    """Whole-snapshot storage in a single JSON file.

    Every read decodes the entire file and every write replaces it. Writes are
    staged in a temporary file next to the target and moved into place, so a
    failed write leaves the previously committed document intact.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = ReadWriteLock()
        self._sequences: Dict[str, IdSequence] = {MESSAGES: IdSequence(), USERS: IdSequence()}

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> None:
        """Create an empty database if none exists and reseed the id counters."""

        with self._lock.write_locked():
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                exists = self._path.exists()
            except OSError as exc:
                raise StoreIOError(f"Cannot prepare database directory for {self._path}") from exc

            if exists:
                snapshot = self._read()
            else:
                snapshot = Snapshot()
                self._write(snapshot)
            self._reseed(snapshot)

    def load(self) -> Snapshot:
        with self._lock.read_locked():
            return self._read()

    def persist(self, snapshot: Snapshot) -> None:
        with self._lock.write_locked():
            self._write(snapshot)

    @contextmanager
    def read(self) -> Iterator[Snapshot]:
        """Yield the latest snapshot while holding the shared lock."""

        with self._lock.read_locked():
            yield self._read()

    @contextmanager
    def transaction(self) -> Iterator[Snapshot]:
        """Load, let the caller mutate, then persist under one exclusive lock.

        Nothing is written if the block raises.
        """

        with self._lock.write_locked():
            snapshot = self._read()
            yield snapshot
            self._write(snapshot)

    def allocate_id(self, collection: str) -> int:
        return self._sequences[collection].allocate()

    def peek_id(self, collection: str) -> int:
        return self._sequences[collection].peek()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _reseed(self, snapshot: Snapshot) -> None:
        highest = {
            MESSAGES: max(snapshot.messages, default=0),
            USERS: max(snapshot.users, default=0),
        }
        for name, sequence in self._sequences.items():
            sequence.advance_to(max(snapshot.next_ids.get(name, 1), highest[name] + 1))

    def _read(self) -> Snapshot:
        try:
            text = self._path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise FormatError(f"Database file {self._path} is not valid UTF-8") from exc
        except OSError as exc:
            raise StoreIOError(f"Failed to read database file {self._path}") from exc

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FormatError(f"Database file {self._path} is not valid JSON: {exc}") from exc
        return decode_snapshot(raw)

    def _write(self, snapshot: Snapshot) -> None:
        payload = encode_snapshot(snapshot)
        payload["next_ids"] = {
            name: max(snapshot.next_ids.get(name, 1), sequence.peek())
            for name, sequence in self._sequences.items()
        }
        try:
            data = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
        except UnicodeEncodeError as exc:
            raise FormatError(f"Snapshot for {self._path} contains text that cannot be stored as UTF-8") from exc

        temp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "wb",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_path = Path(handle.name)
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self._path)
            temp_path = None
        except OSError as exc:
            raise StoreIOError(f"Failed to write database file {self._path}") from exc
        finally:
            if temp_path is not None:
                with suppress(OSError):
                    temp_path.unlink()


__all__ = [
    "MESSAGES",
    "USERS",
    "IdSequence",
    "JSONFileStore",
    "ReadWriteLock",
    "Snapshot",
    "UserRecord",
    "decode_snapshot",
    "encode_snapshot",
]
