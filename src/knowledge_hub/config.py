"""Configuration management for the knowledge hub services."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from knowledge_hub.utils.http import normalize_base_url

_config_logger = logging.getLogger(__name__)

ServiceName = Literal["orchestrator", "storage", "graph", "generation", "search"]
ProviderMode = Literal["auto", "mock", "live"]

BACKEND_NAMES: tuple[str, ...] = ("storage", "graph", "generation", "search")


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)
    service: ServiceName = Field(
        default="orchestrator",
        description="Which service this process runs.",
    )


class BackendSettings(BaseModel):
    storage_url: str = Field(default="http://127.0.0.1:8101")
    graph_url: str = Field(default="http://127.0.0.1:8102")
    generation_url: str = Field(default="http://127.0.0.1:8103")
    search_url: str = Field(default="http://127.0.0.1:8104")
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    health_timeout_seconds: float = Field(default=5.0, gt=0, le=60)

    @field_validator("storage_url", "graph_url", "generation_url", "search_url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        return normalize_base_url(value)

    def url_for(self, backend: str) -> str:
        return getattr(self, f"{backend}_url")


class StorageSettings(BaseModel):
    sqlite_path: str = Field(default="./data/knowledge_hub.sqlite")
    sqlite_wal: bool = Field(default=True)
    seed_sample_data: bool = Field(default=False)


class ProviderSettings(BaseModel):
    """Third-party providers behind the generation and search backends.

    ``mode`` makes demo behaviour explicit:
    - mock: always use the built-in mock implementations
    - live: always use the real providers; missing keys fail at startup
    - auto: use a real provider only when its key is configured
    """

    mode: ProviderMode = Field(default="auto")
    openai_api_key: str | None = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    bing_api_key: str | None = Field(default=None)
    bing_endpoint: str = Field(default="https://api.bing.microsoft.com/v7.0")
    fetch_timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    @field_validator("openai_base_url", "bing_endpoint")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        return normalize_base_url(value)

    def use_live(self, key: str | None) -> bool:
        if self.mode == "mock":
            return False
        if self.mode == "live":
            return True
        return bool(key)


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    backends: BackendSettings = Field(default_factory=BackendSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)


ENV_KEYS = {
    "host": "KB_HOST",
    "port": "KB_PORT",
    "service": "KB_SERVICE",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "storage_url": "STORAGE_SERVICE_URL",
    "graph_url": "GRAPH_SERVICE_URL",
    "generation_url": "GENERATION_SERVICE_URL",
    "search_url": "SEARCH_SERVICE_URL",
    "timeout": "BACKEND_TIMEOUT_SECONDS",
    "health_timeout": "HEALTH_TIMEOUT_SECONDS",
    "sqlite_path": "SQLITE_PATH",
    "sqlite_wal": "SQLITE_WAL",
    "seed": "KB_SEED_SAMPLE_DATA",
    "provider_mode": "KB_PROVIDER_MODE",
    "openai_api_key": "OPENAI_API_KEY",
    "openai_model": "OPENAI_MODEL",
    "openai_base_url": "OPENAI_BASE_URL",
    "bing_api_key": "BING_SEARCH_API_KEY",
    "bing_endpoint": "BING_SEARCH_ENDPOINT",
    "fetch_timeout": "FETCH_TIMEOUT_SECONDS",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    if candidate.is_absolute():
        return str(candidate.resolve())
    return str((_project_root() / candidate).resolve())


def _env_str(key: str) -> str | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = _env_str(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
            "service": os.getenv(ENV_KEYS["service"], ServerSettings().service),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "backends": {
            "storage_url": os.getenv(ENV_KEYS["storage_url"], BackendSettings().storage_url),
            "graph_url": os.getenv(ENV_KEYS["graph_url"], BackendSettings().graph_url),
            "generation_url": os.getenv(
                ENV_KEYS["generation_url"], BackendSettings().generation_url
            ),
            "search_url": os.getenv(ENV_KEYS["search_url"], BackendSettings().search_url),
            "timeout_seconds": _env_float(
                ENV_KEYS["timeout"], BackendSettings().timeout_seconds
            ),
            "health_timeout_seconds": _env_float(
                ENV_KEYS["health_timeout"], BackendSettings().health_timeout_seconds
            ),
        },
        "storage": {
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool(ENV_KEYS["sqlite_wal"], StorageSettings().sqlite_wal),
            "seed_sample_data": _env_bool(
                ENV_KEYS["seed"], StorageSettings().seed_sample_data
            ),
        },
        "providers": {
            "mode": os.getenv(ENV_KEYS["provider_mode"], ProviderSettings().mode),
            "openai_api_key": _env_str(ENV_KEYS["openai_api_key"]),
            "openai_model": os.getenv(
                ENV_KEYS["openai_model"], ProviderSettings().openai_model
            ),
            "openai_base_url": os.getenv(
                ENV_KEYS["openai_base_url"], ProviderSettings().openai_base_url
            ),
            "bing_api_key": _env_str(ENV_KEYS["bing_api_key"]),
            "bing_endpoint": os.getenv(
                ENV_KEYS["bing_endpoint"], ProviderSettings().bing_endpoint
            ),
            "fetch_timeout_seconds": _env_float(
                ENV_KEYS["fetch_timeout"], ProviderSettings().fetch_timeout_seconds
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    return settings
