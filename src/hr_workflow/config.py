"""Configuration management for the HR workflow engine."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ServiceSettings(BaseModel):
    base_url: str = Field(default="http://127.0.0.1:8000")
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    api_token: str | None = Field(default=None, description="Bearer token sent to the record service")

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return value


class RefreshSettings(BaseModel):
    interval_seconds: float = Field(default=5.0, gt=0, le=3600)
    enabled: bool = Field(default=True)


class FilteringSettings(BaseModel):
    debounce_seconds: float = Field(
        default=0.3,
        ge=0.25,
        le=10,
        description="Delay before filter input changes are applied.",
    )


class WorkflowSettings(BaseModel):
    config_path: str | None = Field(
        default=None,
        description="Record-kind YAML; the packaged default is used when unset.",
    )


class Settings(BaseModel):
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    filtering: FilteringSettings = Field(default_factory=FilteringSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)


ENV_KEYS = {
    "base_url": "HR_SERVICE_BASE_URL",
    "timeout_seconds": "HR_SERVICE_TIMEOUT_SECONDS",
    "api_token": "HR_SERVICE_TOKEN",
    "refresh_interval": "HR_REFRESH_INTERVAL_SECONDS",
    "refresh_enabled": "HR_AUTO_REFRESH",
    "debounce": "HR_FILTER_DEBOUNCE_SECONDS",
    "workflow_config": "WORKFLOW_CONFIG_PATH",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = _project_root() / candidate
    return str(candidate.resolve())


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


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
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    workflow_config_env = os.getenv(ENV_KEYS["workflow_config"])

    settings_data: dict[str, object] = {
        "service": {
            "base_url": os.getenv(ENV_KEYS["base_url"], ServiceSettings().base_url),
            "timeout_seconds": _env_float(
                ENV_KEYS["timeout_seconds"], ServiceSettings().timeout_seconds
            ),
            "api_token": os.getenv(ENV_KEYS["api_token"], "").strip() or None,
        },
        "refresh": {
            "interval_seconds": _env_float(
                ENV_KEYS["refresh_interval"], RefreshSettings().interval_seconds
            ),
            "enabled": _env_bool(ENV_KEYS["refresh_enabled"], RefreshSettings().enabled),
        },
        "filtering": {
            "debounce_seconds": _env_float(
                ENV_KEYS["debounce"], FilteringSettings().debounce_seconds
            ),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "workflow": {
            "config_path": _resolve_path(workflow_config_env) if workflow_config_env else None,
        },
    }

    try:
        return Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc
