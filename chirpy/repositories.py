"""Entity repositories layered on :class:`~chirpy.storage.JSONFileStore`.

Each public method is a self-contained transaction: mutating operations run
inside ``store.transaction()`` and pure reads inside ``store.read()``.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from .errors import ConflictError, NotFoundError, UnauthorizedError
from .models import Message, User
from .security import dummy_verify, hash_password, verify_password
from .storage import MESSAGES, USERS, JSONFileStore, UserRecord

ASCENDING = "asc"
DESCENDING = "desc"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class MessageRepository:
    """Create, read and delete chirps."""

    def __init__(self, store: JSONFileStore) -> None:
        self._store = store

    def create(self, body: str, author_id: int) -> Message:
        with self._store.transaction() as snapshot:
            if author_id not in snapshot.users:
                raise NotFoundError(f"User {author_id} does not exist")
            message = Message(
                id=self._store.allocate_id(MESSAGES),
                author_id=author_id,
                body=body,
            )
            snapshot.messages[message.id] = message
        return message

    def get(self, message_id: int) -> Message:
        with self._store.read() as snapshot:
            message = snapshot.messages.get(message_id)
        if message is None:
            raise NotFoundError(f"Chirp {message_id} not found")
        return message

    def list(self, author_id: Optional[int] = None, order: str = ASCENDING) -> List[Message]:
        if order not in (ASCENDING, DESCENDING):
            raise ValueError(f"Unsupported sort order {order!r}; use '{ASCENDING}' or '{DESCENDING}'")

        with self._store.read() as snapshot:
            messages = sorted(snapshot.messages.values(), key=lambda message: message.id)

        if author_id is not None:
            messages = [message for message in messages if message.author_id == author_id]
        if order == DESCENDING:
            messages.reverse()
        return messages

    def delete(self, message_id: int) -> bool:
        """Remove a chirp. Returns ``False`` when it was already gone."""

        with self._store.transaction() as snapshot:
            removed = snapshot.messages.pop(message_id, None)
        return removed is not None


class UserRepository:
    """Account storage with a unique email index."""

    def __init__(self, store: JSONFileStore) -> None:
        self._store = store

    def create(self, email: str, password: str) -> User:
        normalized_email = normalize_email(email or "")
        if not normalized_email:
            raise ValueError("Email must not be empty")
        password_hash = hash_password(password)

        with self._store.transaction() as snapshot:
            if normalized_email in snapshot.emails:
                raise ConflictError(f"A user with email {normalized_email} already exists")
            record = UserRecord(
                id=self._store.allocate_id(USERS),
                email=normalized_email,
                password_hash=password_hash,
            )
            snapshot.users[record.id] = record
            snapshot.emails[record.email] = record.id
        return record.to_public()

    def get(self, user_id: int) -> User:
        with self._store.read() as snapshot:
            record = snapshot.users.get(user_id)
        if record is None:
            raise NotFoundError(f"User {user_id} not found")
        return record.to_public()

    def get_by_email(self, email: str) -> User:
        with self._store.read() as snapshot:
            user_id = snapshot.emails.get(normalize_email(email))
            record = snapshot.users.get(user_id) if user_id is not None else None
        if record is None:
            raise NotFoundError(f"No user with email {email}")
        return record.to_public()

    def update(
        self,
        user_id: int,
        *,
        email: Optional[str] = None,
        password: Optional[str] = None,
        is_privileged: Optional[bool] = None,
    ) -> User:
        """Apply only the supplied fields to an existing user."""

        new_email = normalize_email(email) if email is not None else None
        if new_email is not None and not new_email:
            raise ValueError("Email must not be empty")
        new_hash = hash_password(password) if password is not None else None

        with self._store.transaction() as snapshot:
            record = snapshot.users.get(user_id)
            if record is None:
                raise NotFoundError(f"User {user_id} not found")

            if new_email is not None and new_email != record.email:
                owner = snapshot.emails.get(new_email)
                if owner is not None and owner != user_id:
                    raise ConflictError(f"A user with email {new_email} already exists")
                del snapshot.emails[record.email]
                snapshot.emails[new_email] = user_id
                record.email = new_email
            if new_hash is not None:
                record.password_hash = new_hash
            if is_privileged is not None:
                record.is_privileged = bool(is_privileged)
        return record.to_public()

    def authenticate(self, email: str, password: str) -> User:
        with self._store.read() as snapshot:
            user_id = snapshot.emails.get(normalize_email(email or ""))
            record = snapshot.users.get(user_id) if user_id is not None else None

        if record is None:
            dummy_verify()
            raise UnauthorizedError("Invalid email or password")
        if not verify_password(password, record.password_hash):
            raise UnauthorizedError("Invalid email or password")
        return record.to_public()

    def list(self) -> List[User]:
        with self._store.read() as snapshot:
            records = sorted(snapshot.users.values(), key=lambda record: record.id)
        return [record.to_public() for record in records]


class RevocationRepository:
    """Append-only ledger of revoked bearer tokens."""

    def __init__(self, store: JSONFileStore) -> None:
        self._store = store

    def revoke(self, token: str) -> datetime:
        if not token:
            raise ValueError("Token must not be empty")

        # Re-revocation is answered from a read so the file is not rewritten.
        with self._store.read() as snapshot:
            existing = snapshot.revocations.get(token)
        if existing is not None:
            return existing

        with self._store.transaction() as snapshot:
            return snapshot.revocations.setdefault(token, datetime.now(timezone.utc))

    def is_revoked(self, token: str) -> bool:
        with self._store.read() as snapshot:
            return token in snapshot.revocations

    def revoked_at(self, token: str) -> datetime:
        with self._store.read() as snapshot:
            revoked_at = snapshot.revocations.get(token)
        if revoked_at is None:
            raise NotFoundError("Token has not been revoked")
        return revoked_at


__all__ = [
    "ASCENDING",
    "DESCENDING",
    "MessageRepository",
    "RevocationRepository",
    "UserRepository",
    "normalize_email",
]
