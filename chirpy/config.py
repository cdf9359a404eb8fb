"""Configuration loading for the Chirpy service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .security import DEFAULT_BCRYPT_ROUNDS
from .tokens import DEFAULT_ACCESS_TTL, DEFAULT_REFRESH_TTL

_ENV_OVERRIDES = {
    "database_path": "CHIRPY_DB_PATH",
    "static_dir": "CHIRPY_STATIC_DIR",
    "jwt_secret": "JWT_SECRET",
    "polka_key": "POLKA_KEY",
    "bcrypt_rounds": "CHIRPY_BCRYPT_ROUNDS",
    "access_token_ttl": "CHIRPY_ACCESS_TOKEN_TTL",
    "refresh_token_ttl": "CHIRPY_REFRESH_TOKEN_TTL",
}
_PATH_FIELDS = frozenset({"database_path", "static_dir"})


def default_database_path() -> Path:
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "database.json").resolve(strict=False)


def default_static_dir() -> Path:
    return (Path(__file__).resolve().parent.parent / "public").resolve(strict=False)


def _path_field(data: Mapping[str, object], name: str, base_path: Path | None, default: Path) -> Path:
    raw_path = data.get(name)
    if not raw_path:
        return default
    candidate = Path(str(raw_path)).expanduser()
    if not candidate.is_absolute() and base_path is not None:
        candidate = base_path / candidate
    return candidate.resolve(strict=False)


def _int_field(data: Mapping[str, object], name: str, default: int) -> int:
    value = data.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Configuration field '{name}' must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the store and its HTTP adapter."""

    database_path: Path
    jwt_secret: str = ""
    polka_key: str = ""
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS
    access_token_ttl: timedelta = DEFAULT_ACCESS_TTL
    refresh_token_ttl: timedelta = DEFAULT_REFRESH_TTL
    static_dir: Path = field(default_factory=default_static_dir)

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw mapping data.

        Relative paths resolve against ``base_path`` when given.
        """

        return Settings(
            database_path=_path_field(data, "database_path", base_path, default_database_path()),
            static_dir=_path_field(data, "static_dir", base_path, default_static_dir()),
            jwt_secret=str(data.get("jwt_secret") or ""),
            polka_key=str(data.get("polka_key") or ""),
            bcrypt_rounds=_int_field(data, "bcrypt_rounds", DEFAULT_BCRYPT_ROUNDS),
            access_token_ttl=timedelta(
                seconds=_int_field(data, "access_token_ttl", int(DEFAULT_ACCESS_TTL.total_seconds()))
            ),
            refresh_token_ttl=timedelta(
                seconds=_int_field(data, "refresh_token_ttl", int(DEFAULT_REFRESH_TTL.total_seconds()))
            ),
        )


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Read the optional YAML file and apply environment overrides on top."""

    env = os.environ if environ is None else environ
    if config_path is None and env.get("CHIRPY_CONFIG"):
        config_path = Path(env["CHIRPY_CONFIG"]).expanduser()

    data: Dict[str, object] = {}
    base_path: Path | None = None
    if config_path is not None:
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        data.update(raw)
        base_path = config_path.resolve(strict=False).parent

    for field_name, env_name in _ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value:
            if field_name in _PATH_FIELDS:
                value = str(Path(value).expanduser().resolve(strict=False))
            data[field_name] = value

    return Settings.from_dict(data, base_path=base_path)


__all__ = ["Settings", "default_database_path", "default_static_dir", "load_settings"]
