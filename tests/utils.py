from typing import Any


def definition_payload(identifier: str, kind: str, *names: str, **extra: Any) -> dict[str, Any]:
    return {
        "identifier": identifier,
        "type": kind,
        "fields": [{"name": name} for name in names],
        **extra,
    }


def event_payload(identifier: str, data: Any = None) -> dict[str, Any]:
    return {"identifier": identifier, "data": data}
