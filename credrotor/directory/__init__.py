"""LDAP / Active Directory client and password rotation."""

from __future__ import annotations

from .backend import DirectoryBackend, DirectoryConfigView, DirectoryRole, RotatedPassword
from .client import DirectoryClient, Username, encode_password, to_dn_string, to_filter_string
from .config import DirectoryConfiguration, new_configuration
from .entry import Entry
from .fields import Field, parse_field
from .resolver import DirectoryConnectionResolver
from .tls import TLSSettings, build_tls_settings, validate_certificate
from .transport import DirectoryConnection, DirectoryTransport, Ldap3Connection, Ldap3Transport

__all__ = [
    "DirectoryBackend",
    "DirectoryClient",
    "DirectoryConfigView",
    "DirectoryConfiguration",
    "DirectoryConnection",
    "DirectoryConnectionResolver",
    "DirectoryRole",
    "DirectoryTransport",
    "Entry",
    "Field",
    "Ldap3Connection",
    "Ldap3Transport",
    "RotatedPassword",
    "TLSSettings",
    "Username",
    "build_tls_settings",
    "encode_password",
    "new_configuration",
    "parse_field",
    "to_dn_string",
    "to_filter_string",
    "validate_certificate",
]
