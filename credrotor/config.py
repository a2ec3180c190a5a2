"""Process configuration loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .storage import FileStorage, InMemoryStorage, Storage

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "credrotor" / "config.toml"


class AppConfig(BaseModel):
    """Shape of the process configuration file."""

    storage_path: str | None = None
    log_level: str = "INFO"
    connect_timeout: float = 5.0
    default_ttl: int = Field(default=3600, ge=1)
    max_ttl: int = Field(default=86400, ge=1)
    password_length: int = Field(default=24, ge=8, le=128)
    verify_connection: bool = True

    def with_storage_path(self, path: str | Path | None) -> AppConfig:
        """Return a copy pointing at another storage directory."""

        return self.model_copy(update={"storage_path": str(path) if path is not None else None})

    def with_log_level(self, level: str) -> AppConfig:
        """Return a copy with the log level updated."""

        return self.model_copy(update={"log_level": level.upper()})

    def open_storage(self) -> Storage:
        """Build the storage collaborator described by this config."""

        if self.storage_path:
            return FileStorage(Path(self.storage_path).expanduser())
        return InMemoryStorage()


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file(path or CONFIG_FILE)
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Ignoring unreadable config file", extra={"error": str(exc)})
        return AppConfig()
    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        LOG.warning("Ignoring invalid config file", extra={"error": str(exc)})
        return AppConfig()


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    for key in AppConfig.model_fields:
        if key in raw:
            data[key] = raw[key]
    return data


__all__ = ["AppConfig", "CONFIG_FILE", "load_config"]
