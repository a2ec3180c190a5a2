"""Database drivers that hand connection handles to the pool."""

from __future__ import annotations

import asyncio
import logging
import shlex
import threading
from typing import Any, Callable, Coroutine, Mapping, Protocol, TypeVar, runtime_checkable

import asyncpg

from ..errors import ConnectionFailure, InvalidConfiguration, MissingPrincipal, StatementFailed

LOG = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class DatabaseHandle(Protocol):
    """Live handle to one database, usually backed by a driver-side pool."""

    def ping(self) -> bool:
        """Return ``True`` when the database answers a trivial query."""

    def prepare(self, statement: str) -> None:
        """Parse ``statement`` server side without executing it."""

    def execute(self, statement: str) -> None:
        """Execute ``statement``; raise ``StatementFailed`` on errors."""

    def close(self) -> None:
        """Release every connection held by the handle."""


@runtime_checkable
class Driver(Protocol):
    """Opens handles for one database engine."""

    def open(self, connection_string: str, *, max_open: int, max_idle: int) -> DatabaseHandle:
        """Open a handle honouring the open/idle connection limits."""


class AsyncpgHandle:
    """Synchronous facade over an ``asyncpg`` pool living on the driver loop."""

    _PING_QUERY = "SELECT 1"

    def __init__(self, pool: Any, runner: Callable[[Coroutine[Any, Any, Any]], Any]) -> None:
        self._pool = pool
        self._run = runner

    def ping(self) -> bool:
        try:
            return self._run(self._pool.fetchval(self._PING_QUERY)) == 1
        except Exception as exc:
            LOG.debug("Ping failed", extra={"error": str(exc)})
            return False

    def prepare(self, statement: str) -> None:
        self._run(self._prepare(statement))

    def execute(self, statement: str) -> None:
        self._run(self._execute(statement))

    def close(self) -> None:
        try:
            self._run(self._pool.close())
        except Exception:  # pragma: no cover - best effort cleanup
            LOG.debug("Ignoring error while closing asyncpg pool", exc_info=True)

    async def _prepare(self, statement: str) -> None:
        try:
            async with self._pool.acquire() as conn:
                await conn.prepare(statement)
        except Exception as exc:
            raise StatementFailed(str(exc)) from exc

    async def _execute(self, statement: str) -> None:
        try:
            await self._pool.execute(statement)
        except asyncpg.exceptions.UndefinedObjectError as exc:
            raise MissingPrincipal(str(exc)) from exc
        except Exception as exc:
            raise StatementFailed(str(exc)) from exc


class AsyncpgDriver:
    """PostgreSQL driver running asyncpg pools on a private event loop thread."""

    # asyncpg pools need an upper bound; used for "unlimited" connection configs.
    UNBOUNDED_POOL_SIZE = 100
    # asyncpg has no idle-count cap. Pools start empty and reap connections
    # that sit idle longer than this many seconds; 0 would disable reaping.
    IDLE_CONNECTION_LIFETIME = 300.0
    NO_IDLE_LIFETIME = 1.0

    def __init__(self, *, connect_timeout: float = 5.0) -> None:
        self._connect_timeout = connect_timeout
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="credrotor-asyncpg-driver",
            daemon=True,
        )
        self._loop_thread.start()

    def open(self, connection_string: str, *, max_open: int, max_idle: int) -> AsyncpgHandle:
        kwargs = connect_kwargs(connection_string)
        kwargs.setdefault("timeout", self._connect_timeout)
        max_size = max_open if max_open > 0 else self.UNBOUNDED_POOL_SIZE
        idle_lifetime = self.IDLE_CONNECTION_LIFETIME if max_idle != 0 else self.NO_IDLE_LIFETIME
        try:
            pool = self._run(
                self._create_pool(
                    min_size=0,
                    max_size=max_size,
                    max_inactive_connection_lifetime=idle_lifetime,
                    **kwargs,
                )
            )
        except Exception as exc:
            raise ConnectionFailure(f"Failed to open connection pool: {exc}") from exc
        return AsyncpgHandle(pool, self._run)

    def shutdown(self) -> None:
        """Stop the background event loop."""

        if not self._loop.is_running():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    @staticmethod
    async def _create_pool(**kwargs: Any) -> Any:
        return await asyncpg.create_pool(**kwargs)


_KEYWORD_ALIASES: Mapping[str, str] = {
    "host": "host",
    "hostaddr": "host",
    "user": "user",
    "password": "password",
    "dbname": "database",
    "sslmode": "ssl",
}


def connect_kwargs(connection_string: str) -> dict[str, Any]:
    """Translate a URL or libpq keyword/value string into asyncpg arguments.

    Unknown keywords (``timezone`` included) become server settings.
    """

    if connection_string.startswith(("postgres://", "postgresql://")):
        return {"dsn": connection_string}
    kwargs: dict[str, Any] = {}
    server_settings: dict[str, str] = {}
    try:
        tokens = shlex.split(connection_string)
    except ValueError as exc:
        raise InvalidConfiguration(f"Malformed connection string: {exc}") from exc
    for token in tokens:
        key, sep, value = token.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            raise InvalidConfiguration(f"Malformed connection string segment '{key}'.")
        if key in _KEYWORD_ALIASES:
            kwargs[_KEYWORD_ALIASES[key]] = value
        elif key == "port":
            try:
                kwargs["port"] = int(value)
            except ValueError as exc:
                raise InvalidConfiguration(f"Invalid port '{value}' in connection string.") from exc
        elif key == "connect_timeout":
            kwargs["timeout"] = float(value)
        else:
            server_settings[key] = value
    if server_settings:
        kwargs["server_settings"] = server_settings
    return kwargs


def default_drivers(*, connect_timeout: float = 5.0) -> dict[str, Driver]:
    """Drivers registered for the engines supported out of the box."""

    postgres = AsyncpgDriver(connect_timeout=connect_timeout)
    return {"postgres": postgres, "postgresql": postgres}


__all__ = [
    "AsyncpgDriver",
    "AsyncpgHandle",
    "DatabaseHandle",
    "Driver",
    "connect_kwargs",
    "default_drivers",
]
