"""Read-only projection of directory search results."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable, Mapping, Sequence

from ..errors import UnknownField
from .fields import Field, parse_field

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Entry:
    """Directory record keyed by known fields; unknown attributes are dropped."""

    dn: str
    attributes: Mapping[Field, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_record(cls, dn: str, raw: Mapping[str, Iterable[str]]) -> Entry:
        attributes: dict[Field, tuple[str, ...]] = {}
        for name, values in raw.items():
            try:
                key = parse_field(name)
            except UnknownField:
                LOG.warning("Dropping unrecognized directory attribute", extra={"attribute": name, "dn": dn})
                continue
            attributes[key] = tuple(values)
        return cls(dn=dn, attributes=attributes)

    def get(self, field_: Field) -> Sequence[str] | None:
        return self.attributes.get(field_)

    def get_joined(self, field_: Field) -> str | None:
        values = self.attributes.get(field_)
        if values is None:
            return None
        return ",".join(values)


__all__ = ["Entry"]
