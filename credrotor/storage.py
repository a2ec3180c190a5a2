"""Key/value storage used to persist connection, role and lease records."""

from __future__ import annotations

from pathlib import Path
import threading
from typing import Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ValidationError

from .errors import InvalidConfiguration

ModelT = TypeVar("ModelT", bound=BaseModel)


@runtime_checkable
class Storage(Protocol):
    """Protocol implemented by storage collaborators."""

    def get(self, key: str) -> bytes | None:
        """Return the raw value stored under ``key`` or ``None``."""

    def put(self, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    def list(self, prefix: str) -> list[str]:
        """List direct children of ``prefix``; nested prefixes end with ``/``."""

    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""


class InMemoryStorage:
    """Dictionary-backed storage used by tests and ephemeral runs."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            keys = tuple(self._data)
        return _children(keys, prefix)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileStorage:
    """Storage that keeps one file per key below a root directory."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        with self._lock:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

    def put(self, key: str, value: bytes) -> None:
        path = self._path_for(key)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".tmp")
            tmp.write_bytes(value)
            tmp.replace(path)

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            if not self._root.exists():
                return []
            keys = tuple(
                path.relative_to(self._root).as_posix()
                for path in self._root.rglob("*")
                if path.is_file() and not path.name.endswith(".tmp")
            )
        return _children(keys, prefix)

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        with self._lock:
            path.unlink(missing_ok=True)

    def _path_for(self, key: str) -> Path:
        parts = [part for part in key.split("/") if part]
        if not parts or any(part in {".", ".."} for part in parts):
            raise ValueError(f"Invalid storage key '{key}'.")
        return self._root.joinpath(*parts)


def read_model(storage: Storage, key: str, model: type[ModelT]) -> ModelT | None:
    """Decode the JSON record stored under ``key`` into ``model``."""

    raw = storage.get(key)
    if raw is None:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        raise InvalidConfiguration(f"Stored record '{key}' is corrupt: {exc}") from exc


def write_model(storage: Storage, key: str, record: BaseModel) -> None:
    """Encode ``record`` as JSON and store it under ``key``."""

    storage.put(key, record.model_dump_json().encode("utf-8"))


def _children(keys: tuple[str, ...], prefix: str) -> list[str]:
    children: set[str] = set()
    for key in keys:
        if not key.startswith(prefix):
            continue
        rest = key[len(prefix):]
        if not rest:
            continue
        head, sep, _ = rest.partition("/")
        children.add(head + sep)
    return sorted(children)


__all__ = ["FileStorage", "InMemoryStorage", "Storage", "read_model", "write_model"]
