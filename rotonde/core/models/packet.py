from dataclasses import dataclass, asdict
from enum import StrEnum
from typing import Any, Mapping

from rotonde.core.errors import InvalidPacketError


class PacketType(StrEnum):
    action = "action"
    event = "event"
    definition = "def"
    undefinition = "undef"
    subscribe = "sub"
    unsubscribe = "unsub"


@dataclass
class Packet:
    """
    The single envelope exchanged over a Rotonde channel.
    The Serializer encodes/decodes packets, while the client
    manipulates them in this native Python form.
    """
    type: PacketType
    """
    One of the six packet types, e.g. "event", "def", "sub"
    """

    payload: dict[str, Any]
    """
    Packet body; its shape depends on the type.
    """

    def to_dict(self) -> dict[str, Any]:
        """Return a plain dictionary representation of the packet."""
        data = asdict(self)
        data["type"] = str(self.type)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Packet":
        if not isinstance(data, Mapping):
            raise InvalidPacketError(f"Packet must be an object, got {type(data).__name__}")

        try:
            packet_type = PacketType(data["type"])
        except (KeyError, ValueError) as ex:
            raise InvalidPacketError(f"Unknown packet type in {data!r}") from ex

        payload = data.get("payload")
        if not isinstance(payload, Mapping):
            raise InvalidPacketError(f"Invalid payload for '{packet_type}' packet: {payload!r}")

        return cls(type=packet_type, payload=dict(payload))
