from typing import Protocol, Any


class Serializer(Protocol):
    """
    Defines the interface for encoding/decoding packets exchanged
    over the text-framed channel.

    Implementations must be:
    - deterministic
    - pure (no side effects)
    - explicit about malformed input (raise ValueError)
    """

    def serialize(self, message: Any) -> str:
        """Encode a Python object into a text frame."""

    def deserialize(self, data: str | bytes) -> Any:
        """Decode a frame received from the network into a Python object."""
