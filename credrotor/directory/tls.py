"""Per-URL TLS settings for directory connections."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import ssl
from typing import Any, Iterable, Mapping
from urllib.parse import urlsplit

from cryptography import x509
from ldap3 import Tls
from ldap3.core.tls import check_hostname

from ..errors import InvalidCertificate, InvalidConfiguration

LOG = logging.getLogger(__name__)

DEFAULT_TLS_MIN_VERSION = "tls12"
DEFAULT_TLS_MAX_VERSION = "tls12"

TLS_VERSIONS: Mapping[str, ssl.TLSVersion] = {
    "tls10": ssl.TLSVersion.TLSv1,
    "tls11": ssl.TLSVersion.TLSv1_1,
    "tls12": ssl.TLSVersion.TLSv1_2,
}

_PEM_BEGIN = "-----BEGIN CERTIFICATE-----"


class BoundedTls(Tls):
    """``ldap3.Tls`` whose SSL context is limited to a TLS version range."""

    def __init__(self, *, min_version: ssl.TLSVersion, max_version: ssl.TLSVersion, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.min_version = min_version
        self.max_version = max_version

    def create_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cadata=self.ca_certs_data)
        context.minimum_version = self.min_version
        context.maximum_version = self.max_version
        # ldap3 matches host names itself after the handshake.
        context.check_hostname = False
        context.verify_mode = self.validate
        return context

    def wrap_socket(self, connection: Any, do_handshake: bool = False) -> None:
        wrapped = self.create_context().wrap_socket(
            connection.socket,
            server_side=False,
            do_handshake_on_connect=do_handshake,
            server_hostname=self.sni,
        )
        if do_handshake and self.validate != ssl.CERT_NONE:
            check_hostname(wrapped, connection.server.host, self.valid_names)
        connection.socket = wrapped


@dataclass(frozen=True, slots=True)
class TLSSettings:
    """Transport settings bound to one directory host."""

    server_name: str
    min_version: ssl.TLSVersion = TLS_VERSIONS[DEFAULT_TLS_MIN_VERSION]
    max_version: ssl.TLSVersion = TLS_VERSIONS[DEFAULT_TLS_MAX_VERSION]
    insecure_skip_verify: bool = False
    ca_certificate: str | None = None

    def to_ldap3(self) -> BoundedTls:
        """Build the ``ldap3.Tls`` object used for LDAPS and STARTTLS."""

        return BoundedTls(
            min_version=self.min_version,
            max_version=self.max_version,
            validate=ssl.CERT_NONE if self.insecure_skip_verify else ssl.CERT_REQUIRED,
            ca_certs_data=self.ca_certificate,
            valid_names=[self.server_name] if self.server_name else None,
            sni=self.server_name or None,
        )


def tls_version(name: str, *, setting: str) -> ssl.TLSVersion:
    """Map a symbolic ``tls1x`` name to an ``ssl.TLSVersion``."""

    try:
        return TLS_VERSIONS[name.strip().lower()]
    except KeyError:
        raise InvalidConfiguration(
            f"Invalid '{setting}' {name!r}; accepted values are {', '.join(TLS_VERSIONS)}."
        ) from None


def validate_certificate(certificate: str) -> str | None:
    """Check ``certificate`` is one PEM ``CERTIFICATE`` block holding valid X.509."""

    if not certificate.strip():
        return None
    if certificate.count(_PEM_BEGIN) != 1:
        raise InvalidCertificate("Failed to decode PEM block in the certificate.")
    try:
        x509.load_pem_x509_certificate(certificate.encode("utf-8"))
    except ValueError as exc:
        raise InvalidCertificate(f"Failed to parse certificate: {exc}") from exc
    return certificate


def host_of(url: str) -> str:
    """Host portion of a directory URL; raises ``ValueError`` for a bad port."""

    parts = urlsplit(url)
    if parts.port is not None and not 0 < parts.port < 65536:
        raise ValueError(f"Port out of range in {url!r}")
    return parts.hostname or ""


def build_tls_settings(
    urls: Iterable[str],
    *,
    certificate: str = "",
    min_version: str = DEFAULT_TLS_MIN_VERSION,
    max_version: str = DEFAULT_TLS_MAX_VERSION,
    insecure_skip_verify: bool = False,
) -> dict[str, TLSSettings]:
    """Build TLS settings for every parseable URL, keyed by URL.

    Unparseable URLs are skipped with a warning; callers decide whether an
    empty result is acceptable.
    """

    minimum = tls_version(min_version or DEFAULT_TLS_MIN_VERSION, setting="tls_min_version")
    maximum = tls_version(max_version or DEFAULT_TLS_MAX_VERSION, setting="tls_max_version")
    if minimum > maximum:
        raise InvalidConfiguration("'tls_max_version' must be greater than or equal to 'tls_min_version'.")
    ca_certificate = validate_certificate(certificate)

    settings: dict[str, TLSSettings] = {}
    for url in urls:
        try:
            host = host_of(url)
        except ValueError as exc:
            LOG.warning("Ignoring unparseable directory URL", extra={"url": url, "error": str(exc)})
            continue
        if not host:
            LOG.warning("Ignoring directory URL without a host", extra={"url": url})
            continue
        settings[url] = TLSSettings(
            server_name=host,
            min_version=minimum,
            max_version=maximum,
            insecure_skip_verify=insecure_skip_verify,
            ca_certificate=ca_certificate,
        )
    return settings


__all__ = [
    "BoundedTls",
    "DEFAULT_TLS_MAX_VERSION",
    "DEFAULT_TLS_MIN_VERSION",
    "TLSSettings",
    "TLS_VERSIONS",
    "build_tls_settings",
    "host_of",
    "tls_version",
    "validate_certificate",
]
