from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, YamlConfigSettingsSource

from rotonde.bootstrap.config.loader import get_configfile
from rotonde.core.models.definition import DefinitionKind


class ClientSettings(BaseModel):
    url: Annotated[
        str,
        Field(
            description="WebSocket URL of the Rotonde server, e.g. ws://127.0.0.1:4224/.",
            default="ws://127.0.0.1:4224/"
        )
    ]

    timeout: Annotated[
        float | None,
        Field(
            description=(
                "Default timeout (in seconds) applied to definition and event waits.\n"
                "Leave empty to wait without limit."
            ),
            default=5.0,
            gt=0
        )
    ]

    open_timeout: Annotated[
        float | None,
        Field(
            description="Maximum time allowed for the WebSocket opening handshake.",
            default=10.0,
            gt=0
        )
    ]

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"URL must use the ws:// or wss:// scheme, got '{v}'")
        return v


class DefinitionSettings(BaseModel):
    identifier: Annotated[
        str,
        Field(description="Identifier of the action or event announced by this client.")
    ]

    type: Annotated[
        DefinitionKind,
        Field(description="Kind of the definition: 'action' or 'event'.")
    ]

    fields: Annotated[
        list[dict[str, Any]],
        Field(
            description=(
                "Fields of the definition. Each field is a mapping holding at least\n"
                "a 'name'; any other attribute (type, units, ...) is forwarded as is."
            ),
            default_factory=list
        )
    ]

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for f in v:
            if "name" not in f:
                raise ValueError(f"Field without a name: {f}")
        return v


class BootstrapSettings(BaseModel):
    actions: Annotated[
        dict[str, dict[str, Any]],
        Field(
            description="Actions to send once their definitions are known (identifier -> data).",
            default_factory=dict
        )
    ]

    events: Annotated[
        list[str],
        Field(
            description="Events that must each be received once for the bootstrap to succeed.",
            default_factory=list
        )
    ]

    definitions: Annotated[
        list[str],
        Field(
            description="Additional identifiers whose definitions must be announced by the server.",
            default_factory=list
        )
    ]

    timeout: Annotated[
        float | None,
        Field(
            description="Timeout for each wait of the bootstrap. Defaults to client.timeout.",
            default=None,
            gt=0
        )
    ]


class RotondeConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ROTONDE_",
        extra="allow"
    )

    client: Annotated[
        ClientSettings,
        Field(
            description="Connection to the Rotonde server.",
            default_factory=ClientSettings
        )
    ]

    definitions: Annotated[
        list[DefinitionSettings],
        Field(
            description=(
                "Local definitions announced to the server.\n"
                "They are sent every time the connection opens."
            ),
            default_factory=list
        )
    ]

    subscriptions: Annotated[
        list[str],
        Field(
            description="Event identifiers to subscribe to; received events are logged.",
            default_factory=list
        )
    ]

    bootstrap: Annotated[
        BootstrapSettings | None,
        Field(
            description="Handshake run once the connection is open.",
            default=None
        )
    ]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (YamlConfigSettingsSource(settings_cls, yaml_file=get_configfile()),)

    def bootstrap_timeout(self) -> float | None:
        if self.bootstrap is not None and self.bootstrap.timeout is not None:
            return self.bootstrap.timeout
        return self.client.timeout
