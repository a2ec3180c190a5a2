"""Multi-URL failover for directory connections."""

from __future__ import annotations

import logging
from typing import Mapping
from urllib.parse import urlsplit

from ..errors import ConnectionFailure, CredRotorError, DirectoryConnectionError, UnsupportedScheme
from .config import DirectoryConfiguration
from .tls import TLSSettings
from .transport import DirectoryConnection, DirectoryTransport

LOG = logging.getLogger(__name__)

DEFAULT_LDAP_PORT = 389
DEFAULT_LDAPS_PORT = 636


class DirectoryConnectionResolver:
    """Open the first reachable directory from a configuration's URL list."""

    def __init__(self, config: DirectoryConfiguration, transport: DirectoryTransport) -> None:
        self._config = config
        self._transport = transport

    def connect(self) -> DirectoryConnection:
        """Return a connected (and bound, when credentials exist) handle.

        URLs are tried in configured order. Every per-URL failure is kept and
        raised together as ``DirectoryConnectionError`` once the list is
        exhausted.
        """

        errors: list[CredRotorError] = []
        settings = self._config.tls_settings()
        for url in self._config.urls:
            try:
                conn = self._dial(url, settings)
            except CredRotorError as exc:
                LOG.warning("Directory URL unavailable", extra={"url": url, "error": str(exc)})
                errors.append(exc)
                continue
            if self._config.has_credentials:
                try:
                    conn.bind(self._config.username, self._config.password)
                except CredRotorError as exc:
                    conn.close()
                    LOG.warning("Directory bind failed", extra={"url": url, "error": str(exc)})
                    errors.append(ConnectionFailure(f"{url}: {exc}"))
                    continue
            LOG.debug("Connected to directory", extra={"url": url})
            return conn
        raise DirectoryConnectionError(errors)

    def _dial(self, url: str, settings: Mapping[str, TLSSettings]) -> DirectoryConnection:
        tls = settings.get(url)
        if tls is None:
            raise ConnectionFailure(f"{url}: invalid TLS configuration")
        parts = urlsplit(url)
        host = parts.hostname or ""
        if parts.scheme == "ldap":
            conn = self._transport.dial(host, parts.port or DEFAULT_LDAP_PORT)
            if self._config.starttls:
                try:
                    conn.start_tls(tls)
                except CredRotorError:
                    conn.close()
                    raise
            return conn
        if parts.scheme == "ldaps":
            return self._transport.dial_tls(host, parts.port or DEFAULT_LDAPS_PORT, tls)
        raise UnsupportedScheme(f"{url}: invalid LDAP scheme {parts.scheme!r}")


__all__ = ["DEFAULT_LDAPS_PORT", "DEFAULT_LDAP_PORT", "DirectoryConnectionResolver"]
