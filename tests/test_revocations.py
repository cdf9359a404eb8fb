from __future__ import annotations

from pathlib import Path

import pytest

from chirpy.database import Database
from chirpy.errors import NotFoundError


def test_unknown_token_is_not_revoked(database: Database) -> None:
    assert database.revocations.is_revoked("token") is False
    with pytest.raises(NotFoundError):
        database.revocations.revoked_at("token")


def test_revoke_is_idempotent(database: Database) -> None:
    first = database.revocations.revoke("token")
    assert database.revocations.is_revoked("token") is True

    second = database.revocations.revoke("token")
    third = database.revocations.revoke("token")

    assert first == second == third
    assert database.revocations.revoked_at("token") == first
    assert database.revocations.is_revoked("token") is True


def test_revocations_persist(db_path: Path, database: Database) -> None:
    revoked_at = database.revocations.revoke("token")

    reopened = Database(db_path)
    reopened.initialize()

    assert reopened.revocations.is_revoked("token")
    assert reopened.revocations.revoked_at("token") == revoked_at
    assert revoked_at.tzinfo is not None


def test_revoke_rejects_empty_token(database: Database) -> None:
    with pytest.raises(ValueError):
        database.revocations.revoke("")
