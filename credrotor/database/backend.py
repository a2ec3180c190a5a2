"""Role and credential lifecycle for SQL databases."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from urllib.parse import quote, urlsplit, urlunsplit

from pydantic import ValidationError

from ..config import AppConfig
from ..errors import (
    CredRotorError,
    CredentialCreationFailed,
    InvalidConfiguration,
    InvalidTemplate,
    MissingPrincipal,
    NotConfigured,
    PartialCreationFailure,
    RoleNotAllowed,
    StatementFailed,
)
from ..storage import Storage, read_model, write_model
from .credentials import (
    expiration_after,
    format_expiration,
    generate_password,
    generate_username,
)
from .models import ConnectionConfig, IssuedCredential, LeaseConfig, RoleEntry
from .pool import CONNECTION_PREFIX, ConnectionPool
from .templates import SAMPLE_VALUES, render_all, split_statements

LOG = logging.getLogger(__name__)

ROLE_PREFIX = "role/"
LEASE_KEY = "config/lease"

CONNECTION_READ_WARNING = (
    "Read access to this configuration should be restricted as it returns the "
    "connection string as-is, including passwords, if any."
)


@dataclass(frozen=True, slots=True)
class ConnectionView:
    """Connection config returned to callers together with its read warning."""

    config: ConnectionConfig
    warnings: tuple[str, ...] = (CONNECTION_READ_WARNING,)


class DatabaseBackend:
    """Stores connection/role records and turns roles into database users."""

    def __init__(
        self,
        storage: Storage,
        pool: ConnectionPool,
        *,
        config: AppConfig | None = None,
    ) -> None:
        self._storage = storage
        self._pool = pool
        self._config = config or AppConfig()

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    # Connections -----------------------------------------------------------

    def write_connection(
        self,
        name: str,
        *,
        database_type: str,
        connection_string: str,
        max_open_connections: int = 0,
        max_idle_connections: int = 0,
        allowed_roles: str = "",
        verify_connection: bool | None = None,
    ) -> ConnectionView:
        """Validate, optionally verify, persist and reset a connection config."""

        config = ConnectionConfig.build(
            name,
            database_type=database_type,
            connection_string=connection_string,
            max_open_connections=max_open_connections,
            max_idle_connections=max_idle_connections,
            allowed_roles=allowed_roles,
        )
        verify = self._config.verify_connection if verify_connection is None else verify_connection
        if verify:
            self._pool.verify(config)
        write_model(self._storage, CONNECTION_PREFIX + name, config)
        self._pool.reset(name)
        LOG.info("Stored database connection", extra={"database": name, "type": config.database_type})
        return ConnectionView(config=config)

    def read_connection(self, name: str) -> ConnectionView | None:
        config = read_model(self._storage, CONNECTION_PREFIX + name, ConnectionConfig)
        if config is None:
            return None
        return ConnectionView(config=config)

    def list_connections(self) -> list[str]:
        return self._storage.list(CONNECTION_PREFIX)

    def delete_connection(self, name: str) -> None:
        self._storage.delete(CONNECTION_PREFIX + name)
        self._pool.reset(name)

    # Roles -----------------------------------------------------------------

    def write_role(
        self,
        name: str,
        *,
        database_name: str,
        creation_sql: str,
        revocation_sql: str = "",
        rollback_sql: str = "",
        connection_template: bool = False,
        username_length: int | None = None,
        displayname_length: int | None = None,
        rolename_length: int | None = None,
        default_ttl: int = 0,
        max_ttl: int = 0,
    ) -> RoleEntry:
        """Dry-prepare the creation statements, then persist the role.

        Every creation statement is prepared with sample values against the
        role's database; nothing is stored when any of them fails to parse.
        """

        if not split_statements(creation_sql):
            raise InvalidTemplate("creation_sql parameter must be supplied")
        if max_ttl and default_ttl > max_ttl:
            raise InvalidConfiguration("default_ttl cannot be greater than max_ttl")

        fields: dict[str, object] = {
            "name": name,
            "database_name": database_name,
            "creation_sql": creation_sql,
            "revocation_sql": revocation_sql,
            "rollback_sql": rollback_sql,
            "connection_template": connection_template,
            "default_ttl": default_ttl,
            "max_ttl": max_ttl,
        }
        for key, value in (
            ("username_length", username_length),
            ("displayname_length", displayname_length),
            ("rolename_length", rolename_length),
        ):
            if value is not None:
                fields[key] = value
        try:
            role = RoleEntry.model_validate(fields)
        except ValidationError as exc:
            raise InvalidConfiguration(f"Invalid role '{name}': {exc}") from exc

        handle = self._pool.connection(database_name)
        for statement in render_all(creation_sql, SAMPLE_VALUES):
            try:
                handle.prepare(statement)
            except StatementFailed as exc:
                raise InvalidTemplate(f"Error testing query: {exc}") from exc

        write_model(self._storage, ROLE_PREFIX + name, role)
        LOG.info("Stored role", extra={"role": name, "database": database_name})
        return role

    def read_role(self, name: str) -> RoleEntry | None:
        return read_model(self._storage, ROLE_PREFIX + name, RoleEntry)

    def list_roles(self) -> list[str]:
        return self._storage.list(ROLE_PREFIX)

    def delete_role(self, name: str) -> None:
        self._storage.delete(ROLE_PREFIX + name)

    # Lease -----------------------------------------------------------------

    def write_lease(self, *, ttl: int, max_ttl: int) -> LeaseConfig:
        if max_ttl and ttl > max_ttl:
            raise InvalidConfiguration("ttl cannot be greater than max_ttl")
        try:
            lease = LeaseConfig(ttl=ttl, max_ttl=max_ttl)
        except ValidationError as exc:
            raise InvalidConfiguration(f"Invalid lease settings: {exc}") from exc
        write_model(self._storage, LEASE_KEY, lease)
        return lease

    def read_lease(self) -> LeaseConfig | None:
        return read_model(self._storage, LEASE_KEY, LeaseConfig)

    # Credentials -----------------------------------------------------------

    def issue_credential(self, role_name: str, *, display_name: str = "token") -> IssuedCredential:
        """Create a database user for ``role_name``.

        When a statement after the first fails, the rollback statements run
        with the same values before the original error is raised.
        """

        role = self._require_role(role_name)
        connection = self._require_connection(role.database_name)
        if not connection.allows_role(role_name):
            raise RoleNotAllowed(
                f"Role '{role_name}' is not allowed to use database '{role.database_name}'."
            )

        ttl = self._effective_ttl(role)
        expiration = expiration_after(ttl)
        username = generate_username(
            display_name,
            role_name,
            username_length=role.username_length,
            displayname_length=role.displayname_length,
            rolename_length=role.rolename_length,
        )
        password = generate_password(self._config.password_length)
        values = {
            "name": username,
            "password": password,
            "expiration": format_expiration(expiration),
        }

        handle = self._pool.connection(role.database_name)
        executed = 0
        for statement in render_all(role.creation_sql, values):
            try:
                handle.execute(statement)
            except StatementFailed as exc:
                if executed == 0:
                    raise CredentialCreationFailed(
                        f"Failed to create user for role '{role_name}': {exc}"
                    ) from exc
                rollback_errors = self._rollback(role, values)
                raise PartialCreationFailure(
                    f"Failed to create user for role '{role_name}' after {executed} statement(s): {exc}",
                    rollback_errors=rollback_errors,
                ) from exc
            executed += 1

        LOG.info("Issued credential", extra={"role": role_name, "username": username})
        dsn = None
        if role.connection_template:
            dsn = credential_connection_string(connection.connection_string, username, password)
        return IssuedCredential(
            role=role_name,
            database=role.database_name,
            username=username,
            password=password,
            expiration=expiration,
            ttl=ttl,
            connection_string=dsn,
        )

    def revoke_credential(self, role_name: str, username: str) -> None:
        """Run the revocation statements; an already-absent user is not an error."""

        role = self._require_role(role_name)
        values = {"name": username, "password": "", "expiration": ""}
        statements = render_all(role.revocation_sql, values)
        if not statements:
            LOG.warning("Role has no revocation statements", extra={"role": role_name})
            return
        handle = self._pool.connection(role.database_name)
        for statement in statements:
            try:
                handle.execute(statement)
            except MissingPrincipal:
                LOG.info(
                    "User already absent during revocation",
                    extra={"role": role_name, "username": username},
                )
        LOG.info("Revoked credential", extra={"role": role_name, "username": username})

    def _rollback(self, role: RoleEntry, values: dict[str, str]) -> list[CredRotorError]:
        statements = render_all(role.rollback_sql, values)
        if not statements:
            LOG.warning("Role has no rollback statements", extra={"role": role.name})
            return []
        errors: list[CredRotorError] = []
        try:
            handle = self._pool.connection(role.database_name)
        except CredRotorError as exc:
            LOG.error("Rollback could not reach the database", extra={"role": role.name, "error": str(exc)})
            return [exc]
        for statement in statements:
            try:
                handle.execute(statement)
            except StatementFailed as exc:
                LOG.error("Rollback statement failed", extra={"role": role.name, "error": str(exc)})
                errors.append(exc)
        return errors

    def _effective_ttl(self, role: RoleEntry) -> int:
        lease = self.read_lease() or LeaseConfig()
        ttl = role.default_ttl or lease.ttl or self._config.default_ttl
        max_ttl = role.max_ttl or lease.max_ttl or self._config.max_ttl
        return min(ttl, max_ttl)

    def _require_role(self, name: str) -> RoleEntry:
        role = self.read_role(name)
        if role is None:
            raise NotConfigured(f"Unknown role '{name}'.")
        return role

    def _require_connection(self, name: str) -> ConnectionConfig:
        view = self.read_connection(name)
        if view is None:
            raise NotConfigured(f"Configure the database connection with {CONNECTION_PREFIX}{name} first.")
        return view.config


def credential_connection_string(connection_string: str, username: str, password: str) -> str:
    """Rewrite ``connection_string`` to authenticate as the issued user."""

    if connection_string.startswith(("postgres://", "postgresql://")):
        parts = urlsplit(connection_string)
        host = parts.netloc.rpartition("@")[2]
        netloc = f"{quote(username, safe='')}:{quote(password, safe='')}@{host}"
        return urlunsplit(parts._replace(netloc=netloc))
    kept = [
        segment
        for segment in connection_string.split()
        if segment.partition("=")[0].lower() not in {"user", "password"}
    ]
    kept.extend((f"user={username}", f"password={password}"))
    return " ".join(kept)


__all__ = [
    "CONNECTION_READ_WARNING",
    "ConnectionView",
    "DatabaseBackend",
    "LEASE_KEY",
    "ROLE_PREFIX",
    "credential_connection_string",
]
