from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, model_validator

from .paths import default_config_path, default_data_dir, expand_path

CONFIG_ENV_VAR = "FEEDERLINK_CONFIG"


class DatabaseConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(default_factory=lambda: str(default_data_dir()))


class ClientConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    port: int = Field(default=80, ge=1, le=65535)
    command_timeout: float = Field(default=5.0, gt=0)
    feed_timeout: float = Field(default=30.0, gt=0)


class ScanningConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    default_prefix: str = "192.168.1."
    range_start: int = Field(default=1, ge=0, le=255)
    range_end: int = Field(default=254, ge=0, le=255)
    timeout: float = Field(default=2.0, gt=0, le=30)

    @model_validator(mode="after")
    def _check_range(self) -> ScanningConfig:
        if self.range_start > self.range_end:
            raise ValueError("range_start must not exceed range_end")
        return self


class PollingConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    device_interval: float = Field(default=0.5, gt=0)
    list_interval: float = Field(default=2.0, gt=0)
    missed_ticks_tolerance: int = Field(default=3, ge=1)


class FeedingConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    default_ratio: float = Field(default=0.02, gt=0, le=1)
    tolerance: float = Field(default=0.01, ge=0)
    max_amount: float = Field(default=15.0, gt=0)


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    scanning: ScanningConfig = Field(default_factory=ScanningConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    feeding: FeedingConfig = Field(default_factory=FeedingConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def load_settings(path: Path) -> Settings:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data or {})
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def data_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.database.path)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def render_settings_toml(settings: Settings) -> str:
    lines = [
        "# feederlink configuration",
        "",
        "[database]",
        f"path = {_toml_string(settings.database.path)}",
        "",
        "[client]",
        f"port = {settings.client.port}",
        f"command_timeout = {settings.client.command_timeout}",
        f"feed_timeout = {settings.client.feed_timeout}",
        "",
        "[scanning]",
        f"default_prefix = {_toml_string(settings.scanning.default_prefix)}",
        f"range_start = {settings.scanning.range_start}",
        f"range_end = {settings.scanning.range_end}",
        f"timeout = {settings.scanning.timeout}",
        "",
        "[polling]",
        f"device_interval = {settings.polling.device_interval}",
        f"list_interval = {settings.polling.list_interval}",
        f"missed_ticks_tolerance = {settings.polling.missed_ticks_tolerance}",
        "",
        "[feeding]",
        f"default_ratio = {settings.feeding.default_ratio}",
        f"tolerance = {settings.feeding.tolerance}",
        f"max_amount = {settings.feeding.max_amount}",
        "",
    ]
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
