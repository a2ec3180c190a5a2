"""Named connection pool that lazily dials, probes and recycles handles."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
import threading
from typing import Iterator, Mapping

from ..errors import ConnectionFailure, InvalidConfiguration, NotConfigured
from ..storage import Storage, read_model
from .drivers import DatabaseHandle, Driver, default_drivers
from .models import ConnectionConfig

LOG = logging.getLogger(__name__)

CONNECTION_PREFIX = "dbs/"


@dataclass(frozen=True, slots=True)
class PooledConnection:
    """Live handle owned by the pool together with the config it was opened from."""

    name: str
    handle: DatabaseHandle
    config: ConnectionConfig


@dataclass(slots=True)
class _NameLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class ConnectionPool:
    """Owns at most one live handle per configured database name.

    The pool lock guards the handle map. A per-name lock serialises probing
    and dialing for one name so different names reconnect concurrently.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        drivers: Mapping[str, Driver] | None = None,
        connect_timeout: float = 5.0,
    ) -> None:
        self._storage = storage
        self._drivers: Mapping[str, Driver] = drivers if drivers is not None else default_drivers(
            connect_timeout=connect_timeout
        )
        self._lock = threading.Lock()
        self._connections: dict[str, PooledConnection] = {}
        self._name_locks: dict[str, _NameLock] = {}

    @property
    def names(self) -> tuple[str, ...]:
        """Names that currently hold a live handle."""

        with self._lock:
            return tuple(sorted(self._connections))

    def connection(self, name: str) -> DatabaseHandle:
        """Return a healthy handle for ``name``, dialing when needed."""

        with self._locked(name):
            with self._lock:
                current = self._connections.get(name)
            if current is not None:
                if current.handle.ping():
                    return current.handle
                LOG.info("Connection probe failed, reconnecting", extra={"database": name})
                self._discard(name, current)

            config = self._load_config(name)
            driver = self._driver_for(config)
            handle = driver.open(
                force_utc(config.connection_string),
                max_open=config.max_open_connections,
                max_idle=config.max_idle_connections,
            )
            with self._lock:
                self._connections[name] = PooledConnection(name=name, handle=handle, config=config)
            LOG.debug("Opened database handle", extra={"database": name})
            return handle

    def verify(self, config: ConnectionConfig) -> None:
        """Dial ``config`` once and ping it without keeping the handle."""

        driver = self._driver_for(config)
        handle = driver.open(
            force_utc(config.connection_string),
            max_open=1,
            max_idle=0,
        )
        try:
            if not handle.ping():
                raise ConnectionFailure(f"Database '{config.name}' did not answer the connection probe.")
        finally:
            handle.close()

    def reset(self, name: str) -> None:
        """Close and forget the handle so the next ``connection`` call re-dials."""

        with self._locked(name):
            with self._lock:
                current = self._connections.get(name)
            if current is not None:
                self._discard(name, current)

    def close(self, name: str) -> None:
        """Close the handle for ``name`` but keep it registered.

        The next ``connection`` call finds the closed handle, fails its probe
        and dials a replacement.
        """

        with self._locked(name):
            with self._lock:
                current = self._connections.get(name)
            if current is not None:
                _close_quietly(name, current.handle)

    def close_all(self) -> None:
        """Close and forget every handle held by the pool."""

        for name in self.names:
            self.reset(name)

    @contextmanager
    def _locked(self, name: str) -> Iterator[None]:
        """Hold the per-name lock; it is dropped once unused and no handle is held."""

        with self._lock:
            entry = self._name_locks.setdefault(name, _NameLock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0 and name not in self._connections:
                    del self._name_locks[name]

    def _discard(self, name: str, pooled: PooledConnection) -> None:
        with self._lock:
            if self._connections.get(name) is pooled:
                del self._connections[name]
        _close_quietly(name, pooled.handle)

    def _load_config(self, name: str) -> ConnectionConfig:
        config = read_model(self._storage, CONNECTION_PREFIX + name, ConnectionConfig)
        if config is None:
            raise NotConfigured(f"Configure the database connection with {CONNECTION_PREFIX}{name} first.")
        return config

    def _driver_for(self, config: ConnectionConfig) -> Driver:
        driver = self._drivers.get(config.database_type)
        if driver is None:
            raise InvalidConfiguration(f"Unrecognized database type '{config.database_type}'.")
        return driver


def _close_quietly(name: str, handle: DatabaseHandle) -> None:
    try:
        handle.close()
    except Exception:  # pragma: no cover - best effort cleanup
        LOG.debug("Ignoring error while closing handle", extra={"database": name}, exc_info=True)


def force_utc(connection_string: str) -> str:
    """Pin the session time zone to UTC for URL or keyword/value strings."""

    if connection_string.startswith(("postgres://", "postgresql://")):
        separator = "&" if "?" in connection_string else "?"
        return f"{connection_string}{separator}timezone=utc"
    return f"{connection_string} timezone=utc"


__all__ = ["CONNECTION_PREFIX", "ConnectionPool", "PooledConnection", "force_utc"]
