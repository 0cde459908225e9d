import asyncio
import logging

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from rotonde.core.helpers.spawn import TaskSpawner
from rotonde.core.ports.transport import MessageCallback, OpenCallback, Transport


class WebSocketTransport(Transport):
    """
    Transport backed by a `websockets` asyncio client connection.

    Opening the transport spawns a single task that performs the
    WebSocket handshake, notifies `on_open`, then feeds every received
    message to `on_message` until the connection ends. Outbound messages
    are queued by `send()` and written by a companion writer task in
    queue order, which keeps `send()` synchronous for callers running
    inside packet handlers.

    Connection failures and disconnections are logged. The transport does
    not reconnect: once its task has ended, it stays closed.
    """
    def __init__(self, spawner: TaskSpawner, open_timeout: float | None = 10.0) -> None:
        self._spawner = spawner
        self._open_timeout = open_timeout
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._closed = False
        self._logger = logging.getLogger("infra.ws_transport")

    def open(self, url: str, on_open: OpenCallback, on_message: MessageCallback) -> None:
        if self._task is not None or self._closed:
            raise RuntimeError("A WebSocketTransport can only be opened once")

        self._task = self._spawner.spawn(
            self._run(url, on_open, on_message), name=f"ws:{url}"
        )

    def send(self, data: str) -> None:
        if self._closed:
            self._logger.warning("Transport already closed, message dropped")
            return
        self._outbox.put_nowait(data)

    def close(self) -> None:
        self._closed = True
        if self._task is not None:
            self._task.cancel()

    async def _run(self, url: str, on_open: OpenCallback, on_message: MessageCallback) -> None:
        try:
            async with connect(url, open_timeout=self._open_timeout) as websocket:
                writer = self._spawner.spawn(self._write(websocket), name=f"ws-writer:{url}")
                try:
                    on_open()
                    async for message in websocket:
                        on_message(message)
                finally:
                    writer.cancel()
            self._logger.info(f"Connection to {url} closed")
        except ConnectionClosed as ex:
            self._logger.warning(f"Connection to {url} lost: {ex}")
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as ex:
            self._logger.error(f"Unable to connect to {url}: {ex}")
        finally:
            self._closed = True

    async def _write(self, websocket: ClientConnection) -> None:
        while True:
            data = await self._outbox.get()
            await websocket.send(data)
