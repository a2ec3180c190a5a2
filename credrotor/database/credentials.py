"""Username, password and expiration generation for issued credentials."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import re
import secrets
import string
import uuid

EXPIRATION_FORMAT = "%Y-%m-%d %H:%M:%S%z"

_LOWER = string.ascii_lowercase
_UPPER = string.ascii_uppercase
_DIGITS = string.digits
_ALPHABET = _LOWER + _UPPER + _DIGITS

_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9_-]+")


def generate_username(
    display_name: str,
    role_name: str,
    *,
    username_length: int,
    displayname_length: int,
    rolename_length: int,
) -> str:
    """Build ``<display>-<role>-<uuid>`` truncated to ``username_length``.

    The display and role components are truncated first so drivers with
    short identifier limits still get a unique random tail.
    """

    parts = []
    display = _sanitize(display_name)[:displayname_length]
    if display:
        parts.append(display)
    role = _sanitize(role_name)[:rolename_length]
    if role:
        parts.append(role)
    parts.append(uuid.uuid4().hex)
    return "-".join(parts)[:username_length]


def generate_password(length: int = 24) -> str:
    """Random alphanumeric password with at least one upper, lower and digit."""

    if length < 3:
        raise ValueError("Password length must be at least 3.")
    chars = [secrets.choice(_LOWER), secrets.choice(_UPPER), secrets.choice(_DIGITS)]
    chars.extend(secrets.choice(_ALPHABET) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def expiration_after(ttl_seconds: int, *, now: datetime | None = None) -> datetime:
    """Return the UTC instant ``ttl_seconds`` from ``now``."""

    started = now or datetime.now(tz=timezone.utc)
    return started.astimezone(timezone.utc) + timedelta(seconds=ttl_seconds)


def format_expiration(expiration: datetime) -> str:
    return expiration.astimezone(timezone.utc).strftime(EXPIRATION_FORMAT)


def _sanitize(value: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("", value.lower())


__all__ = [
    "EXPIRATION_FORMAT",
    "expiration_after",
    "format_expiration",
    "generate_password",
    "generate_username",
]
