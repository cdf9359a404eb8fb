from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

import pytest

from chirpy.errors import FormatError, StoreIOError
from chirpy.models import Message
from chirpy.storage import MESSAGES, USERS, JSONFileStore, Snapshot, UserRecord


def _read_document(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def test_initialize_creates_empty_document(db_path: Path) -> None:
    store = JSONFileStore(db_path)
    store.initialize()

    document = _read_document(db_path)
    assert document["messages"] == {}
    assert document["users"] == {}
    assert document["emails"] == {}
    assert document["revocations"] == {}
    assert document["next_ids"] == {"messages": 1, "users": 1}


def test_initialize_creates_missing_parent_directories(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "dir" / "database.json"
    JSONFileStore(path).initialize()
    assert path.exists()


def test_initialize_keeps_existing_content(db_path: Path) -> None:
    store = JSONFileStore(db_path)
    store.initialize()
    snapshot = store.load()
    snapshot.users[1] = UserRecord(id=1, email="a@b.com", password_hash="x")
    snapshot.emails["a@b.com"] = 1
    store.persist(snapshot)

    JSONFileStore(db_path).initialize()

    assert JSONFileStore(db_path).load().users[1].email == "a@b.com"


def test_persist_and_load_round_trip(db_path: Path) -> None:
    store = JSONFileStore(db_path)
    store.initialize()
    revoked_at = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    snapshot = Snapshot(
        messages={1: Message(id=1, author_id=1, body="héllo")},
        users={1: UserRecord(id=1, email="a@b.com", password_hash="hash", is_privileged=True)},
        emails={"a@b.com": 1},
        revocations={"tok": revoked_at},
    )
    store.persist(snapshot)

    loaded = JSONFileStore(db_path).load()

    assert loaded.messages == snapshot.messages
    assert loaded.users == snapshot.users
    assert loaded.emails == snapshot.emails
    assert loaded.revocations == {"tok": revoked_at}


def test_load_missing_file_is_io_error(db_path: Path) -> None:
    with pytest.raises(StoreIOError):
        JSONFileStore(db_path).load()


@pytest.mark.parametrize(
    "content",
    [
        "",
        "{not json",
        "[]",
        '{"messages": []}',
        '{"messages": {"1": {"id": 1}}}',
        '{"messages": {"2": {"id": 1, "author_id": 1, "body": "x"}}}',
        '{"users": {}, "emails": {"a@b.com": 1}}',
    ],
)
def test_load_malformed_content_is_format_error(db_path: Path, content: str) -> None:
    db_path.write_text(content, encoding="utf-8")
    with pytest.raises(FormatError):
        JSONFileStore(db_path).load()


def test_null_sections_load_as_empty(db_path: Path) -> None:
    db_path.write_text(
        '{"messages": null, "users": null, "emails": null, "revocations": null}',
        encoding="utf-8",
    )
    snapshot = JSONFileStore(db_path).load()
    assert snapshot.messages == {}
    assert snapshot.revocations == {}


def test_failed_persist_keeps_previous_document(db_path: Path) -> None:
    store = JSONFileStore(db_path)
    store.initialize()
    before = db_path.read_text(encoding="utf-8")

    snapshot = store.load()
    snapshot.messages[1] = Message(id=1, author_id=1, body="lost")
    with mock.patch("chirpy.storage.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(StoreIOError):
            store.persist(snapshot)

    assert db_path.read_text(encoding="utf-8") == before
    assert [p.name for p in db_path.parent.iterdir()] == [db_path.name]


def test_transaction_discards_changes_on_error(db_path: Path) -> None:
    store = JSONFileStore(db_path)
    store.initialize()

    with pytest.raises(RuntimeError):
        with store.transaction() as snapshot:
            snapshot.messages[1] = Message(id=1, author_id=1, body="nope")
            raise RuntimeError("abort")

    assert store.load().messages == {}


def test_sequences_reseed_from_persisted_ids(db_path: Path) -> None:
    db_path.write_text(
        json.dumps(
            {
                "messages": {"7": {"id": 7, "author_id": 1, "body": "x"}},
                "users": {"3": {"id": 3, "email": "a@b.com", "password_hash": "h"}},
                "emails": {"a@b.com": 3},
            }
        ),
        encoding="utf-8",
    )
    store = JSONFileStore(db_path)
    store.initialize()

    assert store.peek_id(MESSAGES) == 8
    assert store.peek_id(USERS) == 4


def test_sequences_honour_persisted_high_water_mark(db_path: Path) -> None:
    db_path.write_text(json.dumps({"next_ids": {"messages": 12, "users": 5}}), encoding="utf-8")
    store = JSONFileStore(db_path)
    store.initialize()

    assert store.allocate_id(MESSAGES) == 12
    assert store.allocate_id(USERS) == 5


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="requires POSIX permissions as non-root")
def test_initialize_unwritable_directory_is_io_error(tmp_path: Path) -> None:
    locked = tmp_path / "locked"
    locked.mkdir()
    locked.chmod(0o500)
    try:
        with pytest.raises(StoreIOError):
            JSONFileStore(locked / "database.json").initialize()
    finally:
        locked.chmod(0o700)


def test_unencodable_text_is_format_error_and_leaves_no_temp_file(db_path: Path) -> None:
    store = JSONFileStore(db_path)
    store.initialize()
    before = db_path.read_text(encoding="utf-8")

    snapshot = store.load()
    snapshot.messages[1] = Message(id=1, author_id=1, body="bad \ud800")
    with pytest.raises(FormatError):
        store.persist(snapshot)

    assert db_path.read_text(encoding="utf-8") == before
    assert [p.name for p in db_path.parent.iterdir()] == [db_path.name]


class _Interrupted(BaseException):
    pass


def test_interrupted_write_removes_temp_file(db_path: Path) -> None:
    store = JSONFileStore(db_path)
    store.initialize()

    with mock.patch("chirpy.storage.os.fsync", side_effect=_Interrupted):
        with pytest.raises(_Interrupted):
            store.persist(Snapshot())

    assert [p.name for p in db_path.parent.iterdir()] == [db_path.name]


@pytest.mark.parametrize("flag", ['"false"', "0", "null"])
def test_non_boolean_privilege_flag_is_format_error(db_path: Path, flag: str) -> None:
    db_path.write_text(
        '{"users": {"1": {"id": 1, "email": "a@b.com", "password_hash": "x", '
        f'"is_privileged": {flag}}}}}, "emails": {{"a@b.com": 1}}}}',
        encoding="utf-8",
    )

    with pytest.raises(FormatError, match="is_privileged"):
        JSONFileStore(db_path).load()


def test_missing_privilege_flag_defaults_to_false(db_path: Path) -> None:
    db_path.write_text(
        '{"users": {"1": {"id": 1, "email": "a@b.com", "password_hash": "x"}}, "emails": {"a@b.com": 1}}',
        encoding="utf-8",
    )

    assert JSONFileStore(db_path).load().users[1].is_privileged is False
