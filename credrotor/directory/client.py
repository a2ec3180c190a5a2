"""Search and modify directory entries over a failover connection."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Mapping, Sequence

from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import escape_rdn

from ..errors import (
    AmbiguousTarget,
    DirectoryConnectionError,
    DirectoryProtocolError,
    InsecureChannel,
    InvalidNameFormat,
    SearchFailed,
)
from .config import DirectoryConfiguration
from .entry import Entry
from .fields import Field
from .resolver import DirectoryConnectionResolver
from .transport import DirectoryTransport, Ldap3Transport

LOG = logging.getLogger(__name__)

FieldValues = Mapping[Field, Sequence[str]]


@dataclass(frozen=True, slots=True)
class Username:
    """A person's name as written to ``displayName``, ``givenName`` and ``sn``."""

    first_name: str  # ex. "Becca"
    initials: str  # ex. "A"
    last_name: str  # ex. "Petrin"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.initials}. {self.last_name}"


class DirectoryClient:
    """High level directory operations.

    Every call resolves its own connection through
    ``DirectoryConnectionResolver`` and closes it before returning, so a
    client can be shared freely between threads.
    """

    def __init__(
        self,
        config: DirectoryConfiguration,
        transport: DirectoryTransport | None = None,
        *,
        connect_timeout: float = 5.0,
    ) -> None:
        self._config = config
        self._transport = transport or Ldap3Transport(connect_timeout=connect_timeout)

    @property
    def config(self) -> DirectoryConfiguration:
        return self._config

    def search(self, base_dn: FieldValues, filters: FieldValues) -> list[Entry]:
        """Return every entry under ``base_dn`` matching all ``filters``."""

        dn = to_dn_string(base_dn)
        query = to_filter_string(filters)
        try:
            conn = self._resolver().connect()
        except DirectoryConnectionError as exc:
            raise SearchFailed(f"Search of {dn!r} with {query} failed: {exc}", exc.errors) from exc
        try:
            records = conn.search(dn, query)
        except DirectoryProtocolError as exc:
            raise SearchFailed(f"Search of {dn!r} with {query} failed: {exc}") from exc
        finally:
            conn.close()
        return [Entry.from_record(record_dn, raw) for record_dn, raw in records]

    def update_entry(
        self,
        base_dn: FieldValues,
        filters: FieldValues,
        new_values: Mapping[Field, Sequence[str | bytes]],
    ) -> None:
        """Replace ``new_values`` on the single entry matched by ``filters``."""

        entries = self.search(base_dn, filters)
        if len(entries) != 1:
            raise AmbiguousTarget(
                f"Filter {to_filter_string(filters)} matched {len(entries)} entries, expected exactly one."
            )
        target = entries[0].dn
        conn = self._resolver().connect()
        try:
            conn.modify(target, {field.value: list(values) for field, values in new_values.items()})
        finally:
            conn.close()
        LOG.info(
            "Updated directory entry",
            extra={"dn": target, "attribute": ",".join(field.value for field in new_values)},
        )

    def update_password(self, base_dn: FieldValues, filters: FieldValues, new_password: str) -> None:
        """Set ``unicodePwd`` on one entry.

        Active Directory only accepts password changes over an encrypted
        channel, so this refuses to dial unless STARTTLS is enabled or every
        URL is ``ldaps``.
        """

        if not self._config.encrypted:
            raise InsecureChannel(
                "A TLS session must be in progress to update passwords; enable starttls or use ldaps URLs."
            )
        self.update_entry(base_dn, filters, {Field.UNICODE_PASSWORD: [encode_password(new_password)]})

    def update_username(self, base_dn: FieldValues, filters: FieldValues, username: Username) -> None:
        """Rename one entry; ``userPrincipalName`` and ``sAMAccountName`` are left alone."""

        if not _is_mixed_case(username.first_name):
            raise InvalidNameFormat(f"Expected first name {username.first_name!r} to be mixed case, ex. 'Tien'.")
        if not _is_valid_initial(username.initials):
            raise InvalidNameFormat(
                f"Expected initial {username.initials!r} to be capitalized and without a period, ex. 'W'."
            )
        if not _is_mixed_case(username.last_name):
            raise InvalidNameFormat(f"Expected last name {username.last_name!r} to be mixed case, ex. 'Nguyen'.")
        self.update_entry(
            base_dn,
            filters,
            {
                Field.DISPLAY_NAME: [username.full_name],
                Field.GIVEN_NAME: [username.first_name],
                Field.SURNAME: [username.last_name],
            },
        )

    def _resolver(self) -> DirectoryConnectionResolver:
        return DirectoryConnectionResolver(self._config, self._transport)


def encode_password(password: str) -> bytes:
    """Encode ``password`` the way Active Directory expects for ``unicodePwd``."""

    return f'"{password}"'.encode("utf-16-le")


def to_dn_string(base_dn: FieldValues) -> str:
    """Ex. ``{Field.DOMAIN_COMPONENT: ["example", "com"]}`` -> ``dc=example,dc=com``."""

    return ",".join(f"{field.value}={escape_rdn(value)}" for field, values in base_dn.items() for value in values)


def to_filter_string(filters: FieldValues) -> str:
    """Ex. ``(cn=Ellen Jones)`` or ``(&(cn=Ellen Jones)(sn=Jones))``."""

    terms = [
        f"({field.value}={escape_filter_chars(value)})" for field, values in filters.items() for value in values
    ]
    if len(terms) == 1:
        return terms[0]
    return "(&" + "".join(terms) + ")"


def _is_mixed_case(value: str) -> bool:
    return value.upper() != value and value.lower() != value


def _is_valid_initial(value: str) -> bool:
    return len(value) == 1 and value.isalpha() and value.isupper()


__all__ = [
    "DirectoryClient",
    "Username",
    "encode_password",
    "to_dn_string",
    "to_filter_string",
]
