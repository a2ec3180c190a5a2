"""Statement template helpers for role creation/revocation/rollback SQL."""

from __future__ import annotations

from typing import Iterator, Mapping

PLACEHOLDER_OPEN = "{{"
PLACEHOLDER_CLOSE = "}}"

# Values used when dry-preparing creation statements at role write time.
SAMPLE_VALUES: Mapping[str, str] = {
    "name": "foo",
    "password": "bar",
    "expiration": "",
}


def split_statements(template: str) -> list[str]:
    """Split a template on ``;`` and drop blank statements."""

    return list(_iter_statements(template))


def render(statement: str, values: Mapping[str, str]) -> str:
    """Replace ``{{key}}`` placeholders verbatim; unknown placeholders stay."""

    rendered = statement
    for key, value in values.items():
        rendered = rendered.replace(f"{PLACEHOLDER_OPEN}{key}{PLACEHOLDER_CLOSE}", value)
    return rendered


def render_all(template: str, values: Mapping[str, str]) -> list[str]:
    """Split ``template`` and render every statement with ``values``."""

    return [render(statement, values) for statement in _iter_statements(template)]


def _iter_statements(template: str) -> Iterator[str]:
    for chunk in template.split(";"):
        statement = chunk.strip()
        if statement:
            yield statement


__all__ = ["SAMPLE_VALUES", "render", "render_all", "split_statements"]
