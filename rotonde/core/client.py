import asyncio
import logging
from typing import Any, Callable, Iterable, Mapping

from rotonde.core.connection.channel import ConnectionChannel
from rotonde.core.errors import InvalidPacketError, NotConnectedError
from rotonde.core.handlers.registry import HandlerRegistry
from rotonde.core.helpers.spawn import TaskSpawner
from rotonde.core.models.definition import Definition, DefinitionKind, Field
from rotonde.core.models.packet import Packet, PacketType
from rotonde.core.ports.serializer import Serializer
from rotonde.core.ports.transport import TransportFactory
from rotonde.core.store.definitions import DefinitionStore


ReadyCallback = Callable[[], None]


class RotondeClient:
    """
    A client of a Rotonde server.

    The client owns the definitions it announced (local) and the ones it
    learned from the server (remote), one store per kind on each side, and
    four handler registries through which subscribers are attached:

    - `event_handlers`: events received from the server. Attaching the
      first handler of an identifier subscribes to it, detaching the last
      one unsubscribes.
    - `action_handlers`: actions received from the server.
    - `definition_handlers`: definitions announced by the server.
    - `undefinition_handlers`: definitions withdrawn by the server.

    Handlers may be attached and definitions added before the client is
    connected. Each time the channel opens, the client replays the
    subscriptions and local definitions it holds, so the server always
    ends up with the client's current intent.

    A single connection is modelled: losing it is not detected and
    `connect()` must be called again to build a new channel.
    """

    def __init__(
        self,
        url: str,
        transport_factory: TransportFactory,
        serializer: Serializer,
        spawner: TaskSpawner | None = None,
    ) -> None:
        self._url = url
        self._transport_factory = transport_factory
        self._serializer = serializer
        self._spawner = spawner or TaskSpawner()
        self._connection: ConnectionChannel | None = None
        self._ready_callbacks: list[ReadyCallback] = []

        self._local = {
            kind: DefinitionStore(f"local {kind}") for kind in DefinitionKind
        }
        self._remote = {
            kind: DefinitionStore(f"remote {kind}") for kind in DefinitionKind
        }

        self.event_handlers = HandlerRegistry(
            name="event",
            first_added=self._subscribe,
            last_removed=self._unsubscribe,
            spawner=self._spawner,
        )
        self.action_handlers = HandlerRegistry(name="action", spawner=self._spawner)
        self.definition_handlers = HandlerRegistry(name="def", spawner=self._spawner)
        self.undefinition_handlers = HandlerRegistry(name="undef", spawner=self._spawner)

        self._logger = logging.getLogger("core.client")

    @property
    def url(self) -> str:
        return self._url

    def is_connected(self) -> bool:
        """
        Whether a channel exists and has reached the open state.

        Advisory only: a channel lost after opening still reports True.
        """
        return self._connection is not None and self._connection.is_open

    def connect(self) -> None:
        """
        Open a new channel to the server, replacing the current one.

        Once open, queued ready callbacks run, then a subscription is sent
        for every event identifier with handlers and every local definition
        is announced.
        """
        if self._connection is not None:
            self._logger.info(f"Replacing channel to {self._url}")
            self._connection.close()

        self._connection = ConnectionChannel(
            url=self._url,
            transport=self._transport_factory(),
            serializer=self._serializer,
            ready=self._on_ready,
            dispatch=self._handle_packet,
        )
        self._connection.open()

    def close(self) -> None:
        if self._connection is None:
            return

        self._connection.close()
        self._connection = None
        self._logger.info(f"Closed channel to {self._url}")

    def on_ready(self, callback: ReadyCallback) -> None:
        if self.is_connected():
            callback()
            return
        self._ready_callbacks.append(callback)

    def send_event(self, identifier: str, data: Any) -> None:
        self._channel().send_event(identifier, data)

    def send_action(self, identifier: str, data: Any) -> None:
        self._channel().send_action(identifier, data)

    def add_local_definition(
        self,
        kind: DefinitionKind | str,
        identifier: str,
        fields: Iterable[Field] = (),
    ) -> Definition:
        kind = DefinitionKind(kind)
        definition = self._local[kind].put(
            Definition(identifier=identifier, kind=kind, fields=list(fields))
        )
        if self.is_connected():
            self._connection.send_definition(definition)
        return definition

    def remove_local_definition(self, kind: DefinitionKind | str, identifier: str) -> None:
        store = self._local[DefinitionKind(kind)]
        if identifier not in store:
            return

        definition = store.remove(identifier)
        if self.is_connected():
            self._connection.send_undefinition(definition)

    def get_local_definition(self, kind: DefinitionKind | str, identifier: str) -> Definition | None:
        return self._local[DefinitionKind(kind)].get(identifier)

    def get_remote_definition(self, kind: DefinitionKind | str, identifier: str) -> Definition | None:
        return self._remote[DefinitionKind(kind)].get(identifier)

    async def await_definitions(
        self,
        identifiers: Iterable[str],
        timeout: float | None = None,
    ) -> list[Definition]:
        """
        Wait until the server has announced a definition for every
        identifier, whatever its kind.

        Identifiers already known are satisfied immediately. Returns the
        definitions in request order. Raises AwaitTimeoutError as soon as
        one wait expires; the other waits are then cancelled.
        """
        results: list[Definition | asyncio.Future] = []
        for identifier in identifiers:
            known = self._find_remote(identifier)
            if known is not None:
                results.append(known)
            else:
                results.append(self.definition_handlers.await_once(identifier, timeout))

        pending = [r for r in results if isinstance(r, asyncio.Future)]
        if pending:
            self._logger.info(f"Waiting for {len(pending)} definition(s) from {self._url}")
            await _gather(pending)

        return [r.result() if isinstance(r, asyncio.Future) else r for r in results]

    async def bootstrap(
        self,
        actions: Mapping[str, Any] | None = None,
        events: Iterable[str] = (),
        definitions: Iterable[str] = (),
        timeout: float | None = None,
    ) -> list[Any]:
        """
        Handshake enforcing "definitions before traffic".

        1. Wait for the definition of every identifier among the actions to
           send, the events to await and `definitions` that the server has
           not announced yet. A timeout here aborts the bootstrap before
           anything is sent.
        2. Start waiting for each event, then send every action.
        3. Return the payloads of the awaited events, in `events` order,
           once each has been received.
        """
        actions = dict(actions or {})
        events = list(events)

        missing: list[str] = []
        for identifier in (*actions, *events, *definitions):
            if identifier not in missing and self._find_remote(identifier) is None:
                missing.append(identifier)

        if missing:
            await self.await_definitions(missing, timeout)

        channel = self._channel()
        waits = [self.event_handlers.await_once(identifier, timeout) for identifier in events]
        try:
            for identifier, data in actions.items():
                channel.send_action(identifier, data)
        except Exception:
            _cancel(waits)
            raise

        self._logger.info(
            f"Bootstrap sent {len(actions)} action(s), waiting for {len(events)} event(s)"
        )
        return await _gather(waits)

    def _channel(self) -> ConnectionChannel:
        if self._connection is None:
            raise NotConnectedError(f"Not connected to {self._url}, call connect() first")
        return self._connection

    def _find_remote(self, identifier: str) -> Definition | None:
        for store in self._remote.values():
            if identifier in store:
                return store.get(identifier)
        return None

    def _subscribe(self, identifier: str) -> None:
        if self.is_connected():
            self._connection.send_subscribe(identifier)

    def _unsubscribe(self, identifier: str) -> None:
        if self.is_connected():
            self._connection.send_unsubscribe(identifier)

    def _on_ready(self) -> None:
        callbacks, self._ready_callbacks = self._ready_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as ex:
                self._logger.error(f"Ready callback failed: {ex}", exc_info=ex)

        connection = self._connection
        for identifier in self.event_handlers.registered_identifiers():
            connection.send_subscribe(identifier)

        for kind in (DefinitionKind.action, DefinitionKind.event):
            for definition in self._local[kind]:
                connection.send_definition(definition)

    def _handle_packet(self, packet: Packet) -> None:
        match packet.type:
            case PacketType.event:
                identifier = self._identifier_of(packet)
                self._logger.debug(f"Received event: {identifier}")
                self.event_handlers.dispatch(identifier, packet.payload)

            case PacketType.action:
                identifier = self._identifier_of(packet)
                self._logger.debug(f"Received action: {identifier}")
                self.action_handlers.dispatch(identifier, packet.payload)

            case PacketType.definition:
                definition = Definition.from_dict(packet.payload)
                self._logger.debug(f"Received definition: {definition.identifier} {definition.kind}")
                self._remote[definition.kind].put(definition)
                self.definition_handlers.dispatch(definition.identifier, definition)

                if (
                    definition.kind == DefinitionKind.event
                    and definition.identifier in self.event_handlers
                    and self.is_connected()
                ):
                    self._connection.send_subscribe(definition.identifier)

            case PacketType.undefinition:
                definition = Definition.from_dict(packet.payload)
                self._logger.debug(f"Received undefinition: {definition.identifier} {definition.kind}")
                self._remote[definition.kind].remove(definition.identifier)
                self.undefinition_handlers.dispatch(definition.identifier, definition)

            case _:
                self._logger.debug(f"Ignoring '{packet.type}' packet from server")

    @staticmethod
    def _identifier_of(packet: Packet) -> str:
        identifier = packet.payload.get("identifier")
        if not isinstance(identifier, str):
            raise InvalidPacketError(f"'{packet.type}' packet without identifier: {packet.payload!r}")
        return identifier


async def _gather(futures: list[asyncio.Future]) -> list[Any]:
    """
    Wait for every future; on the first failure, cancel the others so
    their handlers are detached, then re-raise.
    """
    try:
        return await asyncio.gather(*futures)
    except BaseException:
        _cancel(futures)
        raise


def _cancel(futures: list[asyncio.Future]) -> None:
    for future in futures:
        if not future.done():
            future.cancel()
