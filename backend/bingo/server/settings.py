"""Bingo server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class BingoServerSettings(BaseSettings):
    model_config = {"env_prefix": "BINGO_"}

    log_dir: str = Field(default="backend/logs/bingo", min_length=1)
    database_path: str = Field(default="backend/data/bingo.db", min_length=1)
    cors_origins: list[str] = []
    ws_allowed_origin: str | None = None
    min_players: int = Field(default=2, ge=1)
    max_create_attempts: int = Field(default=5, ge=1)
    host_name: str = Field(default="Host", min_length=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

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
