"""Command line entry point for credrotor."""

from __future__ import annotations

import argparse
from dataclasses import asdict
import json
import logging
from pathlib import Path
import sys
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from .config import load_config
from .database import ConnectionPool, DatabaseBackend, Driver
from .directory import DirectoryBackend, DirectoryTransport
from .errors import CredRotorError, InvalidConfiguration, NotConfigured
from .storage import Storage

LOG = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = Path.home() / ".local" / "share" / "credrotor"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="credrotor", description=__doc__)
    parser.add_argument("--config", type=Path, default=None, help="Path to config.toml")
    parser.add_argument("--storage", type=Path, default=None, help="Directory holding stored records")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    groups = parser.add_subparsers(dest="group", required=True)

    connection = groups.add_parser("connection", help="Manage database connections")
    connection_actions = connection.add_subparsers(dest="action", required=True)
    write = connection_actions.add_parser("write", help="Store a connection and verify it")
    write.add_argument("name")
    write.add_argument("--type", dest="database_type", default="postgres")
    write.add_argument("--connection-string", required=True)
    write.add_argument("--max-open", type=int, default=0)
    write.add_argument("--max-idle", type=int, default=0)
    write.add_argument("--allowed-roles", default="")
    write.add_argument("--no-verify", action="store_true", help="Skip the connectivity check")
    connection_actions.add_parser("read").add_argument("name")
    connection_actions.add_parser("list")
    connection_actions.add_parser("delete").add_argument("name")

    role = groups.add_parser("role", help="Manage database roles")
    role_actions = role.add_subparsers(dest="action", required=True)
    write = role_actions.add_parser("write", help="Store a role after preparing its statements")
    write.add_argument("name")
    write.add_argument("--database", required=True)
    write.add_argument("--creation-sql", required=True)
    write.add_argument("--revocation-sql", default="")
    write.add_argument("--rollback-sql", default="")
    write.add_argument("--connection-template", action="store_true")
    write.add_argument("--username-length", type=int, default=None)
    write.add_argument("--displayname-length", type=int, default=None)
    write.add_argument("--rolename-length", type=int, default=None)
    write.add_argument("--default-ttl", type=int, default=0)
    write.add_argument("--max-ttl", type=int, default=0)
    role_actions.add_parser("read").add_argument("name")
    role_actions.add_parser("list")
    role_actions.add_parser("delete").add_argument("name")

    lease = groups.add_parser("lease", help="Manage lease bounds")
    lease_actions = lease.add_subparsers(dest="action", required=True)
    write = lease_actions.add_parser("write")
    write.add_argument("--ttl", type=int, required=True)
    write.add_argument("--max-ttl", type=int, required=True)
    lease_actions.add_parser("read")

    creds = groups.add_parser("creds", help="Issue and revoke database credentials")
    creds_actions = creds.add_subparsers(dest="action", required=True)
    issue = creds_actions.add_parser("issue")
    issue.add_argument("role")
    issue.add_argument("--display-name", default="token")
    revoke = creds_actions.add_parser("revoke")
    revoke.add_argument("role")
    revoke.add_argument("username")

    directory = groups.add_parser("directory", help="Manage the directory and rotate passwords")
    directory_actions = directory.add_subparsers(dest="action", required=True)
    write = directory_actions.add_parser("config-write")
    write.add_argument("--url", default="ldap://127.0.0.1")
    write.add_argument("--username", default="")
    write.add_argument("--password", default="")
    write.add_argument("--certificate-file", type=Path, default=None)
    write.add_argument("--insecure-tls", action="store_true")
    write.add_argument("--no-starttls", action="store_true")
    write.add_argument("--tls-min-version", default="tls12")
    write.add_argument("--tls-max-version", default="tls12")
    directory_actions.add_parser("config-read")
    write = directory_actions.add_parser("role-write")
    write.add_argument("name")
    write.add_argument("--base-dn", action="append", required=True, help="field=value, repeatable")
    write.add_argument("--filter", dest="filters", action="append", required=True, help="field=value, repeatable")
    write.add_argument("--ttl", type=int, default=0)
    directory_actions.add_parser("role-read").add_argument("name")
    directory_actions.add_parser("role-list")
    directory_actions.add_parser("role-delete").add_argument("name")
    directory_actions.add_parser("rotate").add_argument("name")

    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    storage: Storage | None = None,
    drivers: Mapping[str, Driver] | None = None,
    transport: DirectoryTransport | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.storage is not None:
        config = config.with_storage_path(args.storage)
    elif config.storage_path is None and storage is None:
        config = config.with_storage_path(DEFAULT_STORAGE_PATH)
    if args.log_level:
        config = config.with_log_level(args.log_level)
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")

    store = storage if storage is not None else config.open_storage()
    try:
        if args.group == "directory":
            result = _run_directory(args, DirectoryBackend(store, transport=transport, config=config))
        else:
            pool = ConnectionPool(store, drivers=drivers, connect_timeout=config.connect_timeout)
            try:
                result = _run_database(args, DatabaseBackend(store, pool, config=config))
            finally:
                pool.close_all()
    except CredRotorError as exc:
        LOG.debug("Command failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if result is not None:
        print(json.dumps(_to_jsonable(result), indent=2, sort_keys=True, default=str))
    return 0


def _run_database(args: argparse.Namespace, backend: DatabaseBackend) -> Any:
    if args.group == "connection":
        if args.action == "write":
            return backend.write_connection(
                args.name,
                database_type=args.database_type,
                connection_string=args.connection_string,
                max_open_connections=args.max_open,
                max_idle_connections=args.max_idle,
                allowed_roles=args.allowed_roles,
                verify_connection=False if args.no_verify else None,
            )
        if args.action == "read":
            return _require(backend.read_connection(args.name), f"connection '{args.name}'")
        if args.action == "list":
            return backend.list_connections()
        backend.delete_connection(args.name)
        return None

    if args.group == "role":
        if args.action == "write":
            return backend.write_role(
                args.name,
                database_name=args.database,
                creation_sql=args.creation_sql,
                revocation_sql=args.revocation_sql,
                rollback_sql=args.rollback_sql,
                connection_template=args.connection_template,
                username_length=args.username_length,
                displayname_length=args.displayname_length,
                rolename_length=args.rolename_length,
                default_ttl=args.default_ttl,
                max_ttl=args.max_ttl,
            )
        if args.action == "read":
            return _require(backend.read_role(args.name), f"role '{args.name}'")
        if args.action == "list":
            return backend.list_roles()
        backend.delete_role(args.name)
        return None

    if args.group == "lease":
        if args.action == "write":
            return backend.write_lease(ttl=args.ttl, max_ttl=args.max_ttl)
        return backend.read_lease()

    if args.action == "issue":
        credential = backend.issue_credential(args.role, display_name=args.display_name)
        return asdict(credential)
    backend.revoke_credential(args.role, args.username)
    return None


def _run_directory(args: argparse.Namespace, backend: DirectoryBackend) -> Any:
    action = args.action
    if action == "config-write":
        certificate = args.certificate_file.read_text(encoding="utf-8") if args.certificate_file else ""
        return backend.write_config(
            url=args.url,
            username=args.username,
            password=args.password,
            certificate=certificate,
            insecure_tls=args.insecure_tls,
            starttls=not args.no_starttls,
            tls_min_version=args.tls_min_version,
            tls_max_version=args.tls_max_version,
        )
    if action == "config-read":
        return _require(backend.read_config(), "directory configuration")
    if action == "role-write":
        return backend.write_role(
            args.name,
            base_dn=parse_pairs(args.base_dn),
            filters=parse_pairs(args.filters),
            ttl=args.ttl,
        )
    if action == "role-read":
        return _require(backend.read_role(args.name), f"directory role '{args.name}'")
    if action == "role-list":
        return backend.list_roles()
    if action == "role-delete":
        backend.delete_role(args.name)
        return None
    return asdict(backend.rotate_password(args.name))


def parse_pairs(items: Sequence[str]) -> dict[str, list[str]]:
    """Group ``field=value`` arguments by field, keeping their order."""

    pairs: dict[str, list[str]] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise InvalidConfiguration(f"Expected field=value, got {item!r}.")
        pairs.setdefault(key.strip(), []).append(value.strip())
    return pairs


def _require(value: Any, label: str) -> Any:
    if value is None:
        raise NotConfigured(f"No {label} is stored.")
    return value


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if hasattr(value, "__dataclass_fields__"):
        return {key: _to_jsonable(item) for key, item in asdict(value).items()}
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


__all__ = ["DEFAULT_STORAGE_PATH", "build_parser", "main", "parse_pairs"]
