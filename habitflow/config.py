"""Configuration management for the HabitFlow registry service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .store import resolve_data_path

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4000
DEFAULT_KEEPALIVE_SECONDS = 15.0

# Environment variable -> settings key
_ENV_KEYS: Dict[str, str] = {
    "HOST": "host",
    "PORT": "port",
    "MONGODB_URI": "mongo_url",
    "MONGODB_DATABASE": "mongo_database",
    "MONGODB_COLLECTION": "mongo_collection",
    "HABITFLOW_DATA_PATH": "data_path",
    "HABITFLOW_ADMIN_EMAIL": "admin_email",
    "HABITFLOW_CORS_ORIGINS": "cors_origins",
    "HABITFLOW_KEEPALIVE_SECONDS": "keepalive_seconds",
}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the registry service."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    data_path: Path = field(default_factory=lambda: resolve_data_path(None))
    mongo_url: Optional[str] = None
    mongo_database: str = "habitflow"
    mongo_collection: str = "users"
    admin_email: Optional[str] = None
    cors_origins: Tuple[str, ...] = ("*",)
    keepalive_seconds: float = DEFAULT_KEEPALIVE_SECONDS

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from raw configuration values."""

        unknown = set(data.keys()) - set(_ENV_KEYS.values())
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        port = _parse_int("port", data.get("port", DEFAULT_PORT))
        if port < 1 or port > 65535:
            raise ValueError("port must be between 1 and 65535")

        keepalive = _parse_float(
            "keepalive_seconds", data.get("keepalive_seconds", DEFAULT_KEEPALIVE_SECONDS)
        )
        if keepalive <= 0:
            raise ValueError("keepalive_seconds must be positive")

        raw_origins = data.get("cors_origins", "*")
        if isinstance(raw_origins, str):
            origins = tuple(item.strip() for item in raw_origins.split(",") if item.strip())
        else:
            origins = tuple(str(item).strip() for item in raw_origins if str(item).strip())  # type: ignore[union-attr]

        admin_email = _optional_text(data.get("admin_email"))

        return Settings(
            host=str(data.get("host") or DEFAULT_HOST),
            port=port,
            data_path=resolve_data_path(_optional_text(data.get("data_path"))),
            mongo_url=_optional_text(data.get("mongo_url")),
            mongo_database=_optional_text(data.get("mongo_database")) or "habitflow",
            mongo_collection=_optional_text(data.get("mongo_collection")) or "users",
            admin_email=admin_email.lower() if admin_email else None,
            cors_origins=origins or ("*",),
            keepalive_seconds=keepalive,
        )


def _optional_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_int(key: str, value: object) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {value!r}") from exc


def _parse_float(key: str, value: object) -> float:
    try:
        return float(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {value!r}") from exc


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file overlaid by environment variables."""

    env = os.environ if environ is None else environ
    raw: Dict[str, object] = {}

    if config_path is None and env.get("HABITFLOW_CONFIG"):
        config_path = Path(env["HABITFLOW_CONFIG"]).expanduser()

    if config_path is not None:
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping of settings")
        raw.update(loaded)

    for env_name, key in _ENV_KEYS.items():
        value = env.get(env_name)
        if value is not None and value.strip():
            raw[key] = value

    return Settings.from_dict(raw)


__all__ = ["Settings", "load_settings", "DEFAULT_PORT"]
