"""Persisted directory configuration and service-account password rotation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from pydantic import BaseModel, Field as ModelField, ValidationError, field_validator

from ..config import AppConfig
from ..database.credentials import expiration_after, generate_password
from ..errors import InvalidConfiguration, NotConfigured
from ..storage import Storage, read_model, write_model
from .client import DirectoryClient
from .config import DEFAULT_URL, DirectoryConfiguration, new_configuration
from .fields import Field, parse_field
from .tls import DEFAULT_TLS_MAX_VERSION, DEFAULT_TLS_MIN_VERSION
from .transport import DirectoryTransport

LOG = logging.getLogger(__name__)

CONFIG_KEY = "directory/config"
ROLE_PREFIX = "directory/role/"

CONFIG_READ_WARNING = (
    "Read access to this endpoint should be controlled via ACLs as it will "
    "return the configuration information as-is, including any passwords."
)


class DirectoryRole(BaseModel):
    """Locates one service account whose password is rotated on demand."""

    name: str
    base_dn: dict[str, list[str]]
    filters: dict[str, list[str]]
    ttl: int = ModelField(default=0, ge=0)

    @field_validator("base_dn", "filters")
    @classmethod
    def _known_fields(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        if not value:
            raise ValueError("at least one attribute is required")
        return {parse_field(key).value: list(values) for key, values in value.items()}

    def base_dn_fields(self) -> dict[Field, list[str]]:
        return {parse_field(key): values for key, values in self.base_dn.items()}

    def filter_fields(self) -> dict[Field, list[str]]:
        return {parse_field(key): values for key, values in self.filters.items()}


@dataclass(frozen=True, slots=True)
class DirectoryConfigView:
    config: DirectoryConfiguration
    warnings: tuple[str, ...] = (CONFIG_READ_WARNING,)


@dataclass(frozen=True, slots=True)
class RotatedPassword:
    """Outcome of a password rotation."""

    role: str
    password: str
    ttl: int
    expiration: datetime

    def __repr__(self) -> str:
        return f"RotatedPassword(role={self.role!r}, ttl={self.ttl}, expiration={self.expiration!r})"


class DirectoryBackend:
    """Stores directory settings and rotates service-account passwords."""

    def __init__(
        self,
        storage: Storage,
        *,
        transport: DirectoryTransport | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self._storage = storage
        self._transport = transport
        self._config = config or AppConfig()

    # Configuration ---------------------------------------------------------

    def write_config(
        self,
        *,
        url: str = DEFAULT_URL,
        username: str = "",
        password: str = "",
        certificate: str = "",
        insecure_tls: bool = False,
        starttls: bool = True,
        tls_min_version: str = DEFAULT_TLS_MIN_VERSION,
        tls_max_version: str = DEFAULT_TLS_MAX_VERSION,
    ) -> DirectoryConfigView:
        config = new_configuration(
            url=url,
            username=username,
            password=password,
            certificate=certificate,
            insecure_tls=insecure_tls,
            starttls=starttls,
            tls_min_version=tls_min_version,
            tls_max_version=tls_max_version,
        )
        write_model(self._storage, CONFIG_KEY, config)
        LOG.info("Stored directory configuration", extra={"url": config.url})
        return DirectoryConfigView(config=config)

    def read_config(self) -> DirectoryConfigView | None:
        config = read_model(self._storage, CONFIG_KEY, DirectoryConfiguration)
        if config is None:
            return None
        return DirectoryConfigView(config=config)

    def delete_config(self) -> None:
        self._storage.delete(CONFIG_KEY)

    def client(self) -> DirectoryClient:
        """Client for the stored configuration; ``NotConfigured`` when absent."""

        view = self.read_config()
        if view is None:
            raise NotConfigured(f"Configure the directory with {CONFIG_KEY} first.")
        return DirectoryClient(view.config, self._transport, connect_timeout=self._config.connect_timeout)

    # Roles -----------------------------------------------------------------

    def write_role(
        self,
        name: str,
        *,
        base_dn: dict[str, list[str]],
        filters: dict[str, list[str]],
        ttl: int = 0,
    ) -> DirectoryRole:
        try:
            role = DirectoryRole(name=name, base_dn=base_dn, filters=filters, ttl=ttl)
        except ValidationError as exc:
            raise InvalidConfiguration(f"Invalid directory role '{name}': {exc}") from exc
        write_model(self._storage, ROLE_PREFIX + name, role)
        LOG.info("Stored directory role", extra={"role": name})
        return role

    def read_role(self, name: str) -> DirectoryRole | None:
        return read_model(self._storage, ROLE_PREFIX + name, DirectoryRole)

    def list_roles(self) -> list[str]:
        return self._storage.list(ROLE_PREFIX)

    def delete_role(self, name: str) -> None:
        self._storage.delete(ROLE_PREFIX + name)

    # Rotation --------------------------------------------------------------

    def rotate_password(self, role_name: str) -> RotatedPassword:
        """Generate a new password for the role's account and write it to the directory."""

        role = self.read_role(role_name)
        if role is None:
            raise NotConfigured(f"Unknown directory role '{role_name}'.")
        client = self.client()
        password = generate_password(self._config.password_length)
        client.update_password(role.base_dn_fields(), role.filter_fields(), password)
        ttl = min(role.ttl or self._config.default_ttl, self._config.max_ttl)
        LOG.info("Rotated directory password", extra={"role": role_name})
        return RotatedPassword(role=role_name, password=password, ttl=ttl, expiration=expiration_after(ttl))


__all__ = [
    "CONFIG_KEY",
    "CONFIG_READ_WARNING",
    "DirectoryBackend",
    "DirectoryConfigView",
    "DirectoryRole",
    "ROLE_PREFIX",
    "RotatedPassword",
]
