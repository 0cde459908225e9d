import asyncio
import logging
from typing import Any

from rotonde.bootstrap.config.settings import RotondeConfig
from rotonde.core.client import RotondeClient
from rotonde.core.errors import RotondeError
from rotonde.core.helpers.spawn import TaskSpawner
from rotonde.core.ports.serializer import Serializer
from rotonde.core.ports.transport import Transport, TransportFactory
from rotonde.infra.ws_transport import WebSocketTransport


class ControlPlane:
    """
    Wires a RotondeClient from the configuration and drives its lifetime:
    announce definitions, attach subscribers, connect, run the configured
    bootstrap once the channel is open, then wait for a stop signal.
    """
    def __init__(
        self,
        config: RotondeConfig,
        serializer: Serializer,
        transport_factory: TransportFactory | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._config = config
        self._loop = loop or self._create_event_loop()
        self._spawner = TaskSpawner(loop=self._loop)
        self._transport_factory = transport_factory or self._websocket_factory
        self._client = RotondeClient(
            url=self._config.client.url,
            transport_factory=self._transport_factory,
            serializer=serializer,
            spawner=self._spawner,
        )
        self.bootstrap_result: list[Any] | None = None

        self._logger = logging.getLogger("rotonde.controlplane")

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def client(self) -> RotondeClient:
        return self._client

    async def start(self, stop_event: asyncio.Event) -> None:
        for definition in self._config.definitions:
            self._client.add_local_definition(
                definition.type, definition.identifier, definition.fields
            )
        self._logger.info(f"Announcing {len(self._config.definitions)} local definition(s)")

        for identifier in self._config.subscriptions:
            self._client.event_handlers.attach(identifier, self._log_event)

        if self._config.bootstrap is not None:
            self._client.on_ready(
                lambda: self._spawner.spawn(self.run_bootstrap(stop_event), name="bootstrap")
            )

        self._client.connect()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    async def stop(self) -> None:
        self._logger.info("Closing Rotonde client")
        self._client.close()
        self._spawner.cancel_all()

        while remaining := self._spawner.remaining_tasks:
            self._logger.debug(f"Waiting for {remaining} background tasks to complete.")
            await asyncio.sleep(0.01)

    async def run_bootstrap(self, stop_event: asyncio.Event) -> None:
        settings = self._config.bootstrap
        try:
            self.bootstrap_result = await self._client.bootstrap(
                actions=settings.actions,
                events=settings.events,
                definitions=settings.definitions,
                timeout=self._config.bootstrap_timeout(),
            )
        except RotondeError as ex:
            self._logger.error(f"Bootstrap failed: {ex}")
            stop_event.set()
            return

        self._logger.info(f"Bootstrap completed: {self.bootstrap_result}")

    def _websocket_factory(self) -> Transport:
        return WebSocketTransport(
            spawner=self._spawner,
            open_timeout=self._config.client.open_timeout,
        )

    def _log_event(self, event: dict[str, Any]) -> None:
        self._logger.info(f"Event {event.get('identifier')}: {event.get('data')}")

    @staticmethod
    def _create_event_loop() -> asyncio.AbstractEventLoop:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        return loop
