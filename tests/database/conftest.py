"""Fake database drivers shared by the database tests."""

from __future__ import annotations

import re
import threading
from typing import Iterator

import pytest

from credrotor.config import AppConfig
from credrotor.database import ConnectionPool, DatabaseBackend
from credrotor.errors import ConnectionFailure, MissingPrincipal, StatementFailed
from credrotor.storage import InMemoryStorage

_CREATE = re.compile(r'^CREATE (?:ROLE|USER) "(?P<name>[^"]+)"', re.IGNORECASE)
_DROP = re.compile(r'^DROP (?:ROLE|USER) "(?P<name>[^"]+)"', re.IGNORECASE)
_KNOWN_VERBS = ("CREATE", "DROP", "GRANT", "REVOKE", "ALTER", "SELECT")


class FakeServer:
    """Tiny in-memory stand-in for a database holding roles."""

    def __init__(self) -> None:
        self.roles: set[str] = set()
        self.executed: list[str] = []
        self.prepared: list[str] = []
        self.fail_on: set[str] = set()
        self._lock = threading.Lock()

    def prepare(self, statement: str) -> None:
        if not statement.upper().startswith(_KNOWN_VERBS):
            raise StatementFailed(f'syntax error at or near "{statement.split()[0]}"')
        self.prepared.append(statement)

    def execute(self, statement: str) -> None:
        with self._lock:
            self.executed.append(statement)
            if any(marker in statement for marker in self.fail_on):
                raise StatementFailed(f"statement rejected: {statement}")
            self.prepare(statement)
            if match := _CREATE.match(statement):
                self.roles.add(match["name"])
            elif match := _DROP.match(statement):
                if match["name"] not in self.roles:
                    raise MissingPrincipal(f'role "{match["name"]}" does not exist')
                self.roles.discard(match["name"])


class FakeHandle:
    def __init__(self, server: FakeServer, connection_string: str, max_open: int, max_idle: int) -> None:
        self.server = server
        self.connection_string = connection_string
        self.max_open = max_open
        self.max_idle = max_idle
        self.closed = False
        self.healthy = True

    def ping(self) -> bool:
        return self.healthy and not self.closed

    def prepare(self, statement: str) -> None:
        self.server.prepare(statement)

    def execute(self, statement: str) -> None:
        self.server.execute(statement)

    def close(self) -> None:
        self.closed = True


class FakeDriver:
    """Driver counting dials; ``unreachable`` makes every dial fail."""

    def __init__(self, server: FakeServer | None = None) -> None:
        self.server = server or FakeServer()
        self.handles: list[FakeHandle] = []
        self.unreachable = False
        self._lock = threading.Lock()

    @property
    def dials(self) -> int:
        return len(self.handles)

    def open(self, connection_string: str, *, max_open: int, max_idle: int) -> FakeHandle:
        if self.unreachable:
            raise ConnectionFailure("connection refused")
        handle = FakeHandle(self.server, connection_string, max_open, max_idle)
        with self._lock:
            self.handles.append(handle)
        return handle


@pytest.fixture()
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture()
def pool(storage: InMemoryStorage, driver: FakeDriver) -> Iterator[ConnectionPool]:
    pool = ConnectionPool(storage, drivers={"postgres": driver})
    yield pool
    pool.close_all()


@pytest.fixture()
def backend(storage: InMemoryStorage, pool: ConnectionPool) -> DatabaseBackend:
    return DatabaseBackend(storage, pool, config=AppConfig(default_ttl=3600, max_ttl=86400))

