"""Error taxonomy shared by the database and directory engines."""

from __future__ import annotations

from typing import Sequence


class CredRotorError(RuntimeError):
    """Base error for credential engine failures."""


class InvalidConfiguration(CredRotorError):
    """Raised when supplied configuration is malformed or incomplete."""


class InvalidCertificate(InvalidConfiguration):
    """Raised when a CA certificate is not a single parseable PEM certificate."""


class InvalidTemplate(InvalidConfiguration):
    """Raised when a role's statements cannot be prepared against the target."""


class InvalidNameFormat(InvalidConfiguration):
    """Raised when a directory display name does not follow the expected casing."""


class UnknownField(InvalidConfiguration):
    """Raised when an attribute name is not part of the field registry."""


class NotConfigured(CredRotorError):
    """Raised when a connection, role or directory has not been configured yet."""


class RoleNotAllowed(CredRotorError):
    """Raised when a role targets a connection that does not allow it."""


class ConnectionFailure(CredRotorError):
    """Raised when a target cannot be dialed, pinged or bound."""


class UnsupportedScheme(ConnectionFailure):
    """Raised for directory URLs that are neither ldap:// nor ldaps://."""


class DirectoryConnectionError(ConnectionFailure):
    """Raised when every configured directory URL failed."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors: tuple[BaseException, ...] = tuple(errors)
        if self.errors:
            details = "; ".join(str(error) for error in self.errors)
            message = f"{len(self.errors)} error(s) occurred connecting to the directory: {details}"
        else:
            message = "No directory URLs are configured."
        super().__init__(message)


class DirectoryProtocolError(CredRotorError):
    """Raised when the directory rejects a search or modify request."""


class SearchFailed(CredRotorError):
    """Raised when a directory search fails at the transport or protocol level.

    ``errors`` holds the per-URL failures when no directory could be reached.
    """

    def __init__(self, message: str, errors: Sequence[BaseException] = ()) -> None:
        super().__init__(message)
        self.errors: tuple[BaseException, ...] = tuple(errors)


class AmbiguousTarget(CredRotorError):
    """Raised when a directory filter does not resolve to exactly one entry."""


class InsecureChannel(CredRotorError):
    """Raised when a password change would travel over an unencrypted channel."""


class StatementFailed(CredRotorError):
    """Raised by drivers when a statement fails to execute."""


class MissingPrincipal(StatementFailed):
    """Raised by drivers when a statement targets a principal that does not exist."""


class CredentialCreationFailed(CredRotorError):
    """Raised when the creation statements for a credential fail."""


class PartialCreationFailure(CredentialCreationFailed):
    """Raised after rollback when creation failed past its first statement."""

    def __init__(self, message: str, *, rollback_errors: Sequence[BaseException] = ()) -> None:
        super().__init__(message)
        self.rollback_errors: tuple[BaseException, ...] = tuple(rollback_errors)


__all__ = [
    "AmbiguousTarget",
    "ConnectionFailure",
    "CredRotorError",
    "CredentialCreationFailed",
    "DirectoryConnectionError",
    "DirectoryProtocolError",
    "InsecureChannel",
    "InvalidCertificate",
    "InvalidConfiguration",
    "InvalidNameFormat",
    "InvalidTemplate",
    "MissingPrincipal",
    "NotConfigured",
    "PartialCreationFailure",
    "RoleNotAllowed",
    "SearchFailed",
    "StatementFailed",
    "UnknownField",
    "UnsupportedScheme",
]
