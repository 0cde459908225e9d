class RotondeError(Exception):
    """Base class for every error raised by the Rotonde client."""


class AwaitTimeoutError(RotondeError, TimeoutError):
    """
    Raised when a wait on an identifier expires before the matching
    packet was dispatched. The handler backing the wait has already
    been detached when this error is observed.
    """
    def __init__(self, identifier: str, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout}s waiting for '{identifier}'")
        self.identifier = identifier
        self.timeout = timeout


class NotConnectedError(RotondeError):
    """Raised when sending while no channel is open."""


class InvalidPacketError(RotondeError, ValueError):
    """Raised when an inbound message cannot be decoded into a Packet."""
