"""Password hashing helpers backed by passlib's bcrypt support."""
from __future__ import annotations

from passlib.context import CryptContext

DEFAULT_BCRYPT_ROUNDS = 12
MIN_BCRYPT_ROUNDS = 4
MAX_BCRYPT_ROUNDS = 31
MAX_PASSWORD_BYTES = 72


def _build_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


_pwd_context = _build_context(DEFAULT_BCRYPT_ROUNDS)


def configure_password_hashing(rounds: int) -> None:
    """Change the bcrypt cost factor used for new hashes.

    Existing hashes keep verifying because the cost is encoded in each hash.
    """

    global _pwd_context
    if not MIN_BCRYPT_ROUNDS <= rounds <= MAX_BCRYPT_ROUNDS:
        raise ValueError(
            f"bcrypt rounds must be between {MIN_BCRYPT_ROUNDS} and {MAX_BCRYPT_ROUNDS}, got {rounds}"
        )
    _pwd_context = _build_context(rounds)


def _too_long(password: str) -> bool:
    return len(password.encode("utf-8", "surrogatepass")) > MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    if _too_long(password):
        raise ValueError(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed or _too_long(password):
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


def dummy_verify() -> None:
    """Spend the same time as a real verification for unknown accounts."""

    _pwd_context.dummy_verify()


__all__ = [
    "DEFAULT_BCRYPT_ROUNDS",
    "MAX_PASSWORD_BYTES",
    "configure_password_hashing",
    "dummy_verify",
    "hash_password",
    "verify_password",
]
