from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError


class Settings(BaseSettings):
    config_path: str = os.path.expanduser("~/.forge/config.yaml")
    events_dir: str = os.path.expanduser("~/.forge/events")
    index_path: str = os.path.expanduser("~/.forge/index/documents.jsonl")
    log_level: str = "INFO"
    prod_mode: bool = False
    disable_client_side_telemetry: bool = False

    model_config = {"env_prefix": "FORGE_"}


settings = Settings()


class Device(str, Enum):
    CPU = "cpu"
    CUDA = "cuda"
    ROCM = "rocm"
    METAL = "metal"
    VULKAN = "vulkan"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())


class LocalModelConfig(_Frozen):
    type: Literal["local"] = "local"
    model_id: str
    parallelism: int = Field(default=1, ge=1)
    device: Device = Device.CPU


class HttpModelConfig(_Frozen):
    type: Literal["http"] = "http"
    kind: str
    api_endpoint: str | None = None
    api_key: str | None = None
    model_name: str | None = None
    prompt_template: str | None = None
    chat_template: str | None = None


ModelConfig = Annotated[Union[LocalModelConfig, HttpModelConfig], Field(discriminator="type")]


class ModelConfigGroup(_Frozen):
    completion: ModelConfig | None = None
    chat: ModelConfig | None = None
    embedding: ModelConfig | None = None


class ServerSettings(_Frozen):
    completion_timeout: float = Field(default=30, gt=0)


class CompletionConfig(_Frozen):
    max_input_length: int = Field(default=1024 * 10, gt=0)
    max_decoding_tokens: int = Field(default=64, gt=0)


class RepositoryConfig(_Frozen):
    name: str
    git_url: str


class Config(_Frozen):
    model: ModelConfigGroup = ModelConfigGroup()
    server: ServerSettings = ServerSettings()
    completion: CompletionConfig = CompletionConfig()
    repositories: list[RepositoryConfig] = Field(default_factory=list)


def load_config(path: str | None = None) -> Config:
    """Load the YAML config file, falling back to defaults when it is absent."""
    config_path = Path(path or settings.config_path).expanduser()
    if not config_path.exists():
        return Config()
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Unable to read config file {config_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    try:
        return Config.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e


def to_local_config(model_id: str, parallelism: int, device: Device | str) -> LocalModelConfig:
    return LocalModelConfig(model_id=model_id, parallelism=parallelism, device=Device(device))


def model_identifier(config: LocalModelConfig | HttpModelConfig) -> str:
    """Name a configured model the way /v1/models reports it."""
    if isinstance(config, LocalModelConfig):
        return config.model_id
    return config.model_name or config.api_endpoint or config.kind
