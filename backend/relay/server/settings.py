"""Relay server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class RelayServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RELAY_", populate_by_name=True)

    host: str = "0.0.0.0"  # noqa: S104
    # Hosting platforms inject PORT and RENDER_REGION without our prefix.
    port: int = Field(default=3000, ge=1, le=65535, validation_alias=AliasChoices("RELAY_PORT", "PORT"))
    server_name: str | None = None
    region: str | None = Field(default=None, validation_alias=AliasChoices("RELAY_REGION", "RENDER_REGION"))
    cors_origins: list[str] = ["*"]
    static_dir: str = "public"
    log_dir: str | None = None
    max_sessions: int = Field(default=1000, ge=1)
    directory_ttl_seconds: float = Field(default=40, ge=1)
    directory_sweep_interval_seconds: float = Field(default=20, ge=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings)
