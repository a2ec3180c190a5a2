"""Persisted records and runtime dataclasses for database credentials."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from ..errors import InvalidConfiguration

DEFAULT_MAX_OPEN_CONNECTIONS = 2

DEFAULT_USERNAME_LENGTH = 16
DEFAULT_DISPLAYNAME_LENGTH = 4
DEFAULT_ROLENAME_LENGTH = 4


class ConnectionConfig(BaseModel):
    """Connection settings for one named database, stored at ``dbs/<name>``."""

    name: str
    database_type: str
    connection_string: str
    max_open_connections: int = DEFAULT_MAX_OPEN_CONNECTIONS
    max_idle_connections: int = DEFAULT_MAX_OPEN_CONNECTIONS
    allowed_roles: str = ""

    @classmethod
    def build(
        cls,
        name: str,
        *,
        database_type: str,
        connection_string: str,
        max_open_connections: int = 0,
        max_idle_connections: int = 0,
        allowed_roles: str = "",
    ) -> ConnectionConfig:
        """Validate raw field values and apply the connection limit defaults.

        A zero ``max_open_connections`` becomes 2 and a negative one means
        unlimited. A zero ``max_idle_connections`` follows the open limit and
        the idle limit never exceeds the open limit.
        """

        if not name:
            raise InvalidConfiguration("name parameter must be supplied")
        database_type = database_type.strip().lower()
        if not database_type:
            raise InvalidConfiguration("database_type parameter must be supplied")
        if not connection_string:
            raise InvalidConfiguration("connection_string parameter must be supplied")

        max_open = max_open_connections
        if max_open == 0:
            max_open = DEFAULT_MAX_OPEN_CONNECTIONS
        max_idle = max_idle_connections
        if max_idle == 0:
            max_idle = max_open
        if max_open > 0 and max_idle > max_open:
            max_idle = max_open

        return cls(
            name=name,
            database_type=database_type,
            connection_string=connection_string,
            max_open_connections=max_open,
            max_idle_connections=max_idle,
            allowed_roles=allowed_roles.strip(),
        )

    @property
    def unlimited(self) -> bool:
        return self.max_open_connections < 0

    def allows_role(self, role: str) -> bool:
        """Check the comma separated allow-list; ``*`` admits every role."""

        allowed = {item.strip() for item in self.allowed_roles.split(",") if item.strip()}
        return "*" in allowed or role in allowed


class RoleEntry(BaseModel):
    """Credential issuance policy stored at ``role/<name>``."""

    name: str
    database_name: str
    creation_sql: str
    revocation_sql: str = ""
    rollback_sql: str = ""
    connection_template: bool = False
    username_length: int = Field(default=DEFAULT_USERNAME_LENGTH, ge=1)
    displayname_length: int = Field(default=DEFAULT_DISPLAYNAME_LENGTH, ge=0)
    rolename_length: int = Field(default=DEFAULT_ROLENAME_LENGTH, ge=0)
    default_ttl: int = Field(default=0, ge=0)
    max_ttl: int = Field(default=0, ge=0)


class LeaseConfig(BaseModel):
    """Mount wide lease bounds stored at ``config/lease`` (seconds)."""

    ttl: int = Field(default=0, ge=0)
    max_ttl: int = Field(default=0, ge=0)


@dataclass(frozen=True, slots=True)
class IssuedCredential:
    """Credential handed back to the caller after creation succeeded."""

    role: str
    database: str
    username: str
    password: str
    expiration: datetime
    ttl: int
    connection_string: str | None = None

    def __repr__(self) -> str:
        return (
            f"IssuedCredential(role={self.role!r}, database={self.database!r}, "
            f"username={self.username!r}, expiration={self.expiration.isoformat()!r})"
        )


__all__ = [
    "ConnectionConfig",
    "DEFAULT_MAX_OPEN_CONNECTIONS",
    "IssuedCredential",
    "LeaseConfig",
    "RoleEntry",
]
