from typing import Callable, Protocol


OpenCallback = Callable[[], None]
"""
Invoked once the underlying channel is open and ready to send.
"""

MessageCallback = Callable[[str | bytes], None]
"""
Invoked with the raw content of every inbound message.
"""


class Transport(Protocol):
    """
    Duplex, message-oriented channel used by a ConnectionChannel.

    A transport is opened once against a URL and is never reopened: a new
    connection means a new transport. Sending is non-blocking; messages
    are delivered in the order `send` was called. Failures to connect and
    disconnections are reported by the transport itself (logging) and are
    not surfaced to the caller.
    """

    def open(self, url: str, on_open: OpenCallback, on_message: MessageCallback) -> None:
        """Start connecting to `url` and deliver notifications to the callbacks."""

    def send(self, data: str) -> None:
        """Queue a text message for delivery."""

    def close(self) -> None:
        """Tear the channel down. Safe to call multiple times."""


TransportFactory = Callable[[], Transport]
"""
Builds a fresh transport for each connection attempt.
"""
