"""Directory transport capabilities and their ldap3 implementation."""

from __future__ import annotations

import logging
from typing import Mapping, Protocol, Sequence, runtime_checkable

from ldap3 import (
    ALL_ATTRIBUTES,
    AUTO_BIND_NONE,
    MODIFY_REPLACE,
    NONE,
    SIMPLE,
    SUBTREE,
    SYNC,
    Connection,
    Server,
)
from ldap3.core.exceptions import LDAPException

from ..errors import ConnectionFailure, DirectoryProtocolError
from .tls import TLSSettings

LOG = logging.getLogger(__name__)

SearchRecord = tuple[str, Mapping[str, Sequence[str]]]
AttributeValues = Sequence[str | bytes]


@runtime_checkable
class DirectoryConnection(Protocol):
    """Operations available on an established directory connection."""

    def bind(self, username: str, password: str) -> None: ...

    def start_tls(self, tls: TLSSettings) -> None: ...

    def search(self, base_dn: str, search_filter: str) -> list[SearchRecord]: ...

    def modify(self, dn: str, replace: Mapping[str, AttributeValues]) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class DirectoryTransport(Protocol):
    """Dials plain or TLS directory connections."""

    def dial(self, host: str, port: int) -> DirectoryConnection: ...

    def dial_tls(self, host: str, port: int, tls: TLSSettings) -> DirectoryConnection: ...


class Ldap3Connection:
    """``DirectoryConnection`` backed by an open ``ldap3.Connection``."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    @property
    def connection(self) -> Connection:
        return self._conn

    def bind(self, username: str, password: str) -> None:
        try:
            self._conn.rebind(user=username, password=password, authentication=SIMPLE)
        except LDAPException as exc:
            raise ConnectionFailure(f"Bind failed: {exc}") from exc

    def start_tls(self, tls: TLSSettings) -> None:
        self._conn.server.tls = tls.to_ldap3()
        try:
            if not self._conn.start_tls():
                raise ConnectionFailure("STARTTLS was refused by the server.")
        except LDAPException as exc:
            raise ConnectionFailure(f"STARTTLS failed: {exc}") from exc

    def search(self, base_dn: str, search_filter: str) -> list[SearchRecord]:
        try:
            self._conn.search(
                search_base=base_dn,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=ALL_ATTRIBUTES,
            )
        except LDAPException as exc:
            raise DirectoryProtocolError(f"Search failed: {exc}") from exc
        records: list[SearchRecord] = []
        for item in self._conn.response or ():
            if item.get("type") != "searchResEntry":
                continue
            raw = item.get("raw_attributes") or {}
            records.append((item["dn"], {name: [_decode(value) for value in values] for name, values in raw.items()}))
        return records

    def modify(self, dn: str, replace: Mapping[str, AttributeValues]) -> None:
        changes = {name: [(MODIFY_REPLACE, list(values))] for name, values in replace.items()}
        try:
            self._conn.modify(dn, changes)
        except LDAPException as exc:
            raise DirectoryProtocolError(f"Modify failed: {exc}") from exc

    def close(self) -> None:
        try:
            self._conn.unbind()
        except LDAPException:  # pragma: no cover - best effort cleanup
            LOG.debug("Ignoring error while closing directory connection", exc_info=True)


class Ldap3Transport:
    """``DirectoryTransport`` that opens synchronous ldap3 connections."""

    def __init__(self, *, connect_timeout: float = 5.0, client_strategy: str = SYNC) -> None:
        self._connect_timeout = connect_timeout
        self._client_strategy = client_strategy

    def dial(self, host: str, port: int) -> Ldap3Connection:
        server = Server(host, port=port, use_ssl=False, get_info=NONE, connect_timeout=self._connect_timeout)
        return self._open(server)

    def dial_tls(self, host: str, port: int, tls: TLSSettings) -> Ldap3Connection:
        server = Server(
            host,
            port=port,
            use_ssl=True,
            tls=tls.to_ldap3(),
            get_info=NONE,
            connect_timeout=self._connect_timeout,
        )
        return self._open(server)

    def _open(self, server: Server) -> Ldap3Connection:
        conn = Connection(
            server,
            auto_bind=AUTO_BIND_NONE,
            client_strategy=self._client_strategy,
            raise_exceptions=True,
        )
        try:
            conn.open()
        except LDAPException as exc:
            raise ConnectionFailure(f"Failed to connect to {server.host}:{server.port}: {exc}") from exc
        return Ldap3Connection(conn)


def _decode(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = [
    "DirectoryConnection",
    "DirectoryTransport",
    "Ldap3Connection",
    "Ldap3Transport",
    "SearchRecord",
]
