import logging
from enum import StrEnum
from typing import Any, Callable

from rotonde.core.errors import NotConnectedError
from rotonde.core.models.definition import Definition
from rotonde.core.models.packet import Packet, PacketType
from rotonde.core.ports.serializer import Serializer
from rotonde.core.ports.transport import Transport


PacketDispatch = Callable[[Packet], None]


class ChannelState(StrEnum):
    connecting = "connecting"
    open = "open"


class ConnectionChannel:
    """
    Encodes and decodes Rotonde packets over a single transport.

    The channel starts in the `connecting` state and moves to `open` when
    the transport reports that it is ready; the ready callback is invoked
    on that transition and never again. No further transitions exist: a
    lost transport is not detected here, and reconnecting means building
    a new channel.

    Every outbound operation serializes a `{type, payload}` packet and
    hands the resulting text to the transport. Every inbound message is
    decoded into a Packet and passed to the dispatch function. Messages
    that cannot be decoded are logged and dropped, as are messages whose
    dispatch raises: neither stops the channel.
    """

    def __init__(
        self,
        url: str,
        transport: Transport,
        serializer: Serializer,
        ready: Callable[[], None],
        dispatch: PacketDispatch,
    ) -> None:
        self._url = url
        self._transport = transport
        self._serializer = serializer
        self._ready = ready
        self._dispatch = dispatch
        self.state = ChannelState.connecting
        self._logger = logging.getLogger("core.connection.channel")

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_open(self) -> bool:
        return self.state == ChannelState.open

    def open(self) -> None:
        self._logger.info(f"Connecting to {self._url}")
        self._transport.open(self._url, self._on_open, self._on_message)

    def close(self) -> None:
        self._transport.close()

    def send_event(self, identifier: str, data: Any) -> None:
        self._send(PacketType.event, {"identifier": identifier, "data": data})

    def send_action(self, identifier: str, data: Any) -> None:
        self._send(PacketType.action, {"identifier": identifier, "data": data})

    def send_definition(self, definition: Definition) -> None:
        self._send(PacketType.definition, definition.to_dict())

    def send_undefinition(self, definition: Definition) -> None:
        self._send(PacketType.undefinition, definition.to_dict())

    def send_subscribe(self, identifier: str) -> None:
        self._send(PacketType.subscribe, {"identifier": identifier})

    def send_unsubscribe(self, identifier: str) -> None:
        self._send(PacketType.unsubscribe, {"identifier": identifier})

    def _send(self, packet_type: PacketType, payload: dict[str, Any]) -> None:
        if not self.is_open:
            raise NotConnectedError(
                f"Cannot send '{packet_type}' packet, channel to {self._url} is not open"
            )

        packet = Packet(type=packet_type, payload=payload)
        self._transport.send(self._serializer.serialize(packet.to_dict()))
        self._logger.debug(f"Sent {packet_type}: {payload.get('identifier')}")

    def _on_open(self) -> None:
        if self.is_open:
            self._logger.debug(f"Duplicate open notification from {self._url} ignored")
            return

        self.state = ChannelState.open
        self._logger.info(f"Channel to {self._url} is open")
        self._ready()

    def _on_message(self, raw: str | bytes) -> None:
        try:
            packet = Packet.from_dict(self._serializer.deserialize(raw))
        except ValueError as ex:
            self._logger.warning(f"Dropping malformed message: {ex}")
            return

        try:
            self._dispatch(packet)
        except Exception as ex:
            self._logger.error(
                f"Error while dispatching '{packet.type}' packet: {ex}", exc_info=ex
            )
