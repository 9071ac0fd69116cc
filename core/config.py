# core/config.py
import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from core.errors import ConfigError

DEFAULT_CONFIG_PATH = "config.json"


class Settings(BaseModel):
    """Startup configuration. Read once, never mutated afterwards."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    http_port: int = Field(80, ge=1, le=65535)

    port_range_start: int = Field(3000, ge=1, le=65535)
    port_range_end: int = Field(65535, ge=1, le=65535)
    container_port: int = Field(80, ge=1, le=65535)

    build_descriptor: str = "Dockerfile"
    workspace_prefix: str = "repo-"

    shutdown_timeout: int = Field(10, ge=0)

    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="after")
    def _check_port_range(self):
        if self.port_range_start > self.port_range_end:
            raise ValueError("port_range_start must not exceed port_range_end")
        return self


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from a JSON file. A missing file yields the defaults;
    anything else that goes wrong raises ConfigError.
    """
    path = path or os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    p = Path(path)

    try:
        raw = p.read_text()
    except FileNotFoundError:
        return Settings()
    except OSError as e:
        raise ConfigError(f"failed to open config file {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid config file {path}: {e}") from e
