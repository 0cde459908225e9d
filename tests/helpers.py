import os
from pathlib import Path

from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, YamlConfigSettingsSource

from rotonde.bootstrap.config.settings import RotondeConfig


class FakeRotondeConfig(RotondeConfig, BaseSettings):
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        configfile = Path(os.environ["TEST_ROTONDECONFIG"])
        return (YamlConfigSettingsSource(settings_cls, yaml_file=configfile),)
