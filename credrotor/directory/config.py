"""Directory connection configuration."""

from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import BaseModel, PrivateAttr

from ..errors import InvalidConfiguration
from .tls import (
    DEFAULT_TLS_MAX_VERSION,
    DEFAULT_TLS_MIN_VERSION,
    TLSSettings,
    build_tls_settings,
)

DEFAULT_URL = "ldap://127.0.0.1"


class DirectoryConfiguration(BaseModel):
    """Bind credentials, URLs and TLS options for one directory."""

    url: str = DEFAULT_URL
    username: str = ""
    password: str = ""
    certificate: str = ""
    insecure_tls: bool = False
    starttls: bool = True
    tls_min_version: str = DEFAULT_TLS_MIN_VERSION
    tls_max_version: str = DEFAULT_TLS_MAX_VERSION

    _tls_settings: dict[str, TLSSettings] | None = PrivateAttr(default=None)

    @property
    def urls(self) -> list[str]:
        """Configured URLs in the order they are tried."""

        return [item.strip() for item in self.url.split(",") if item.strip()]

    @property
    def has_credentials(self) -> bool:
        return bool(self.username)

    @property
    def encrypted(self) -> bool:
        """True when every connection is protected by STARTTLS or LDAPS."""

        if self.starttls:
            return True
        urls = self.urls
        return bool(urls) and all(urlsplit(url).scheme == "ldaps" for url in urls)

    def tls_settings(self) -> dict[str, TLSSettings]:
        """TLS settings keyed by URL, built once per configuration object."""

        if self._tls_settings is None:
            self._tls_settings = build_tls_settings(
                self.urls,
                certificate=self.certificate,
                min_version=self.tls_min_version,
                max_version=self.tls_max_version,
                insecure_skip_verify=self.insecure_tls,
            )
        return self._tls_settings


def new_configuration(
    *,
    url: str = DEFAULT_URL,
    username: str = "",
    password: str = "",
    certificate: str = "",
    insecure_tls: bool = False,
    starttls: bool = True,
    tls_min_version: str = DEFAULT_TLS_MIN_VERSION,
    tls_max_version: str = DEFAULT_TLS_MAX_VERSION,
) -> DirectoryConfiguration:
    """Validate raw field values and return a configuration.

    URLs are lower-cased; at least one must parse. A password without a
    username is rejected.
    """

    config = DirectoryConfiguration(
        url=url.strip().lower(),
        username=username,
        password=password,
        certificate=certificate,
        insecure_tls=insecure_tls,
        starttls=starttls,
        tls_min_version=(tls_min_version or DEFAULT_TLS_MIN_VERSION).lower(),
        tls_max_version=(tls_max_version or DEFAULT_TLS_MAX_VERSION).lower(),
    )
    if password and not username:
        raise InvalidConfiguration("username must be provided with a password")
    if not config.tls_settings():
        raise InvalidConfiguration("unable to parse any of the given urls")
    return config


__all__ = ["DEFAULT_URL", "DirectoryConfiguration", "new_configuration"]
