"""Fake directory transport shared by the directory tests."""

from __future__ import annotations

import re
from typing import Mapping, Sequence

import pytest

from credrotor.directory.tls import TLSSettings
from credrotor.errors import ConnectionFailure, DirectoryProtocolError

_TERM = re.compile(r"\((?P<attr>[A-Za-z]+)=(?P<value>[^()]*)\)")


class FakeDirectory:
    """In-memory directory tree answering equality filters."""

    def __init__(self, entries: Mapping[str, Mapping[str, Sequence[str]]] | None = None) -> None:
        self.entries: dict[str, dict[str, list[str]]] = {
            dn: {name: list(values) for name, values in attrs.items()} for dn, attrs in (entries or {}).items()
        }
        self.searches: list[tuple[str, str]] = []
        self.modifications: list[tuple[str, dict[str, list]]] = []
        self.users = {"cn=admin,dc=example,dc=com": "admin-secret"}
        self.fail_searches = False

    def search(self, base_dn: str, search_filter: str) -> list[tuple[str, dict[str, list[str]]]]:
        self.searches.append((base_dn, search_filter))
        if self.fail_searches:
            raise DirectoryProtocolError("Search failed: operationsError")
        terms = [(match["attr"].lower(), match["value"]) for match in _TERM.finditer(search_filter)]
        results = []
        for dn, attrs in self.entries.items():
            if not dn.lower().endswith(base_dn.lower()):
                continue
            lowered = {name.lower(): values for name, values in attrs.items()}
            if all(value in lowered.get(attr, ()) for attr, value in terms):
                results.append((dn, {name: list(values) for name, values in attrs.items()}))
        return results

    def modify(self, dn: str, replace: Mapping[str, Sequence[str | bytes]]) -> None:
        self.modifications.append((dn, {name: list(values) for name, values in replace.items()}))
        for name, values in replace.items():
            self.entries[dn][name] = list(values)


class FakeConnection:
    def __init__(self, transport: FakeTransport, host: str, port: int, tls: TLSSettings | None) -> None:
        self.transport = transport
        self.host = host
        self.port = port
        self.tls = tls
        self.bound_as: str | None = None
        self.closed = False

    def bind(self, username: str, password: str) -> None:
        if self.transport.directory.users.get(username) != password:
            raise ConnectionFailure("Bind failed: invalidCredentials")
        self.bound_as = username

    def start_tls(self, tls: TLSSettings) -> None:
        if self.host in self.transport.starttls_refused:
            raise ConnectionFailure("STARTTLS failed: unavailable")
        self.tls = tls

    def search(self, base_dn: str, search_filter: str):
        return self.transport.directory.search(base_dn, search_filter)

    def modify(self, dn: str, replace) -> None:
        self.transport.directory.modify(dn, replace)

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    """Records every dial; hosts in ``unreachable`` refuse connections."""

    def __init__(self, directory: FakeDirectory | None = None) -> None:
        self.directory = directory or FakeDirectory()
        self.unreachable: set[str] = set()
        self.starttls_refused: set[str] = set()
        self.dials: list[tuple[str, str, int]] = []
        self.connections: list[FakeConnection] = []

    def dial(self, host: str, port: int) -> FakeConnection:
        return self._connect("plain", host, port, None)

    def dial_tls(self, host: str, port: int, tls: TLSSettings) -> FakeConnection:
        return self._connect("tls", host, port, tls)

    def _connect(self, kind: str, host: str, port: int, tls: TLSSettings | None) -> FakeConnection:
        self.dials.append((kind, host, port))
        if host in self.unreachable:
            raise ConnectionFailure(f"Failed to connect to {host}:{port}: connection refused")
        conn = FakeConnection(self, host, port, tls)
        self.connections.append(conn)
        return conn


class ForbiddenTransport:
    """Transport for paths that must fail before touching the network."""

    def dial(self, host: str, port: int):
        raise AssertionError("unexpected dial")

    def dial_tls(self, host: str, port: int, tls: TLSSettings):
        raise AssertionError("unexpected dial")


@pytest.fixture()
def directory() -> FakeDirectory:
    return FakeDirectory(
        {
            "cn=Becca Petrin,ou=users,dc=example,dc=com": {
                "cn": ["Becca Petrin"],
                "sAMAccountName": ["becca"],
                "objectClass": ["top", "person", "user"],
                "mail": ["becca@example.com"],
            },
            "cn=Tien Nguyen,ou=users,dc=example,dc=com": {
                "cn": ["Tien Nguyen"],
                "sAMAccountName": ["tien"],
                "objectClass": ["top", "person", "user"],
            },
            "cn=svc-app,ou=services,dc=example,dc=com": {
                "cn": ["svc-app"],
                "sAMAccountName": ["svc-app"],
                "objectClass": ["top", "person", "user"],
            },
        }
    )


@pytest.fixture()
def transport(directory: FakeDirectory) -> FakeTransport:
    return FakeTransport(directory)


@pytest.fixture()
def forbidden_transport() -> ForbiddenTransport:
    return ForbiddenTransport()
