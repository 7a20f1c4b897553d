"""Configuration management for the users service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import DEFAULT_COLLECTION_NAME, DEFAULT_DATABASE_NAME, DEFAULT_MONGO_URL

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000

_ENV_OVERRIDES = {
    "mongo_url": "USERS_API_MONGO_URL",
    "database_name": "USERS_API_DATABASE",
    "collection_name": "USERS_API_COLLECTION",
    "host": "USERS_API_HOST",
    "port": "USERS_API_PORT",
}


def _parse_port(value: object) -> int:
    try:
        port = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid port setting: {value!r}") from exc
    if not 1 <= port <= 65535:
        raise ValueError(f"Port must be between 1 and 65535, got {port}")
    return port


def _require_text(field: str, value: object) -> str:
    text = str(value).strip()
    if not text:
        raise ValueError(f"Configuration field '{field}' must not be empty")
    return text


@dataclass(frozen=True)
class Settings:
    """Connection and listener settings for the users service."""

    mongo_url: str = DEFAULT_MONGO_URL
    database_name: str = DEFAULT_DATABASE_NAME
    collection_name: str = DEFAULT_COLLECTION_NAME
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from raw dictionary data, applying defaults."""
        unknown = set(data.keys()) - set(_ENV_OVERRIDES)
        if unknown:
            raise ValueError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        defaults = Settings()
        return Settings(
            mongo_url=_require_text("mongo_url", data.get("mongo_url", defaults.mongo_url)),
            database_name=_require_text("database_name", data.get("database_name", defaults.database_name)),
            collection_name=_require_text(
                "collection_name", data.get("collection_name", defaults.collection_name)
            ),
            host=_require_text("host", data.get("host", defaults.host)),
            port=_parse_port(data.get("port", defaults.port)),
        )

    def with_overrides(self, environ: Mapping[str, str]) -> "Settings":
        """Return a copy with any ``USERS_API_*`` environment variables applied."""
        changes: Dict[str, object] = {}
        for field, variable in _ENV_OVERRIDES.items():
            raw = environ.get(variable)
            if raw is None or not raw.strip():
                continue
            if field == "port":
                changes[field] = _parse_port(raw)
            else:
                changes[field] = raw.strip()
        if not changes:
            return self
        return replace(self, **changes)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "settings.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (when present) and the environment.

    An explicitly requested file must exist; the default location is optional.
    """
    if environ is None:
        environ = os.environ

    explicit = config_path is not None or bool(environ.get("USERS_API_CONFIG"))
    path = config_path or resolve_config_path(environ.get("USERS_API_CONFIG"))

    raw: Dict[str, object] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        section = loaded.get("users_api", {}) if isinstance(loaded, dict) else None
        if not isinstance(section, dict):
            raise ValueError("Configuration file must define a mapping under the 'users_api' key")
        raw = section
    elif explicit:
        raise FileNotFoundError(f"Configuration file not found: {path}")

    return Settings.from_dict(raw).with_overrides(environ)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
