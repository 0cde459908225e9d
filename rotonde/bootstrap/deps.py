import json
from functools import lru_cache

from pydantic import ValidationError

from rotonde.bootstrap.config.settings import RotondeConfig
from rotonde.core.controlplane import ControlPlane
from rotonde.infra.json_serializer import JsonSerializer


@lru_cache
def get_cp() -> ControlPlane:
    return ControlPlane(
        config=get_config(),
        serializer=JsonSerializer(),
    )


@lru_cache
def get_config() -> RotondeConfig:
    try:
        return RotondeConfig()  # type: ignore[call-arg]
    except FileNotFoundError as ex:
        raise SystemExit(f"Provide a correct configuration file path: {ex}")
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}")
        raise SystemExit("\n".join(msg))
