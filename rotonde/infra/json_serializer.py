import json
from typing import Any

from rotonde.core.ports.serializer import Serializer


class JsonSerializer(Serializer):
    """
    JSON implementation of the Serializer interface, the encoding
    spoken by Rotonde servers.

    - one JSON document per message
    - compact separators
    - decoding errors surface as ValueError (json.JSONDecodeError)
    """
    def serialize(self, message: Any) -> str:
        return json.dumps(message, separators=(",", ":"))

    def deserialize(self, data: str | bytes) -> Any:
        return json.loads(data)
