"""SQL connection pooling and role based credential issuance."""

from __future__ import annotations

from .backend import CONNECTION_READ_WARNING, ConnectionView, DatabaseBackend
from .drivers import AsyncpgDriver, AsyncpgHandle, DatabaseHandle, Driver, default_drivers
from .models import ConnectionConfig, IssuedCredential, LeaseConfig, RoleEntry
from .pool import ConnectionPool, PooledConnection, force_utc
from .templates import render, render_all, split_statements

__all__ = [
    "AsyncpgDriver",
    "AsyncpgHandle",
    "CONNECTION_READ_WARNING",
    "ConnectionConfig",
    "ConnectionPool",
    "ConnectionView",
    "DatabaseBackend",
    "DatabaseHandle",
    "Driver",
    "IssuedCredential",
    "LeaseConfig",
    "PooledConnection",
    "RoleEntry",
    "default_drivers",
    "force_utc",
    "render",
    "render_all",
    "split_statements",
]
