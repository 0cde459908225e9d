from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping

from rotonde.core.errors import InvalidPacketError


Field = Mapping[str, Any]
"""
A single field of a definition: ``{"name": ..., **attributes}``.
Two fields are considered the same field when their names are equal.
"""


class DefinitionKind(StrEnum):
    action = "action"
    event = "event"


@dataclass
class Definition:
    """
    Declared shape of an action or an event.

    A definition is announced by one side of the channel before any
    traffic referencing its identifier is sent. On the wire the kind is
    carried under the ``type`` key, as Rotonde servers expect.
    """
    identifier: str
    """
    Unique key naming the action or event.
    """

    kind: DefinitionKind
    """
    Whether this definition describes an action or an event.
    """

    fields: list[Field] = field(default_factory=list)
    """
    Ordered fields, unique by name.
    """

    extra: dict[str, Any] = field(default_factory=dict)
    """
    Attributes received on the wire that the client does not interpret.
    They are kept so that the definition is re-emitted unchanged.
    """

    def field_names(self) -> list[str]:
        return [f["name"] for f in self.fields]

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "identifier": self.identifier,
            "type": str(self.kind),
            "fields": [dict(f) for f in self.fields],
        })
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Definition":
        try:
            identifier = data["identifier"]
            kind = DefinitionKind(data["type"])
        except (KeyError, TypeError, ValueError) as ex:
            raise InvalidPacketError(f"Invalid definition: {data!r}") from ex

        fields = data.get("fields") or []
        if not isinstance(fields, list) or not all(
            isinstance(f, Mapping) and "name" in f for f in fields
        ):
            raise InvalidPacketError(f"Invalid fields for '{identifier}': {fields!r}")

        extra = {
            key: value for key, value in data.items()
            if key not in ("identifier", "type", "fields")
        }
        return cls(identifier=identifier, kind=kind, fields=list(fields), extra=extra)


def merge_fields(existing: list[Field], incoming: list[Field]) -> list[Field]:
    """
    Union of two field lists, deduplicated by name.

    Fields of ``existing`` come first and win on name collisions;
    fields of ``incoming`` with a new name are appended in order.
    """
    merged: list[Field] = []
    seen: set[str] = set()
    for f in (*existing, *incoming):
        if f["name"] in seen:
            continue
        seen.add(f["name"])
        merged.append(f)
    return merged
