from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from domain.models import CanvasLayout

DEFAULT_CONFIG_PATH = Path("config/blockdiag.yaml")

StoreBackend = Literal["filesystem", "sql", "s3"]


class S3Settings(BaseModel):
    bucket: str = ""
    prefix: str = "diagrams/"
    region: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    use_path_style: bool = False
    max_attempts: int = Field(default=3, ge=1)
    connect_timeout: float = Field(default=5.0, gt=0)


class StoreSettings(BaseModel):
    backend: StoreBackend = "filesystem"
    json_path: Path = Path("data/diagrams.json")
    database_url: str = "sqlite:///data/diagrams.sqlite3"
    echo_sql: bool = False
    s3: S3Settings = S3Settings()

    @field_validator("backend", mode="before")
    @classmethod
    def normalize_backend(cls, value: object) -> object:
        return str(value).strip().lower() if value else "filesystem"


class CanvasSettings(BaseModel):
    width: float = Field(default=800.0, gt=0)
    height: float = Field(default=420.0, gt=0)
    box_x: float = Field(default=40.0, ge=0)
    box_y: float = Field(default=40.0, ge=0)
    padding: float = Field(default=16.0, ge=0)

    def to_layout(self) -> CanvasLayout:
        return CanvasLayout(
            width=self.width,
            height=self.height,
            box_x=self.box_x,
            box_y=self.box_y,
            padding=self.padding,
        )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BLOCKDIAG_", env_nested_delimiter="__")

    title: str = "Block Diagram Editor"
    log_level: str = "INFO"
    group_name: str = "Group"
    store: StoreSettings = StoreSettings()
    canvas: CanvasSettings = CanvasSettings()

    _yaml_path: ClassVar[Path | None] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> str:
        level = str(value or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            msg = f"Unknown log level: {value}"
            raise ValueError(msg)
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("BLOCKDIAG_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous


def configure_logging(settings: AppSettings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(settings.log_level)
