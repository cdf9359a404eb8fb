from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chirpy.database import Database  # noqa: E402
from chirpy.security import DEFAULT_BCRYPT_ROUNDS, configure_password_hashing  # noqa: E402


@pytest.fixture(autouse=True)
def fast_password_hashing():
    """bcrypt at its minimum cost keeps the suite fast."""
    configure_password_hashing(4)
    yield
    configure_password_hashing(DEFAULT_BCRYPT_ROUNDS)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "database.json"


@pytest.fixture()
def database(db_path: Path) -> Database:
    db = Database(db_path)
    db.initialize()
    return db
