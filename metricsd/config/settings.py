"""Daemon settings using Pydantic BaseSettings."""

import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from metricsd.core.errors import ConfigurationError, InvalidInstrumentationKeyError

DEFAULT_CONFIG_FILE = "appsettings.json"


class Settings(BaseSettings):
    """Daemon configuration loaded from init kwargs, environment, .env and JSON."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        json_file=DEFAULT_CONFIG_FILE,
        json_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Scheduling
    record_interval_seconds: float = Field(default=2.0, gt=0)
    report_interval_seconds: float = Field(default=60.0, gt=0)
    shutdown_timeout_seconds: float = Field(default=5.0, ge=0)

    # Export targets
    instrumentation_key: str = Field(default="")
    exporters_enabled: str = Field(default="app_insights")
    app_insights_endpoint: str = Field(default="https://dc.services.visualstudio.com")
    http_export_url: str = Field(default="")
    export_timeout_seconds: int = Field(default=30, gt=0)
    export_max_retries: int = Field(default=1, ge=0)
    reporting_enabled: bool = Field(default=True)

    # Snapshot output
    formatters_enabled: str = Field(default="text,json")
    metrics_context: str = Field(default="application")
    global_tags: str = Field(default="")

    # Logging
    log_level: str = Field(default="DEBUG")
    log_file: Optional[str] = Field(default="metricsd.log")
    log_console: bool = Field(default=False)
    log_json: bool = Field(default=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over the JSON file so deployments can override it.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @property
    def enabled_exporters(self) -> List[str]:
        """Parse enabled exporters from comma-separated string."""
        return _split_csv(self.exporters_enabled)

    @property
    def enabled_formatters(self) -> List[str]:
        """Parse enabled formatters from comma-separated string."""
        return _split_csv(self.formatters_enabled)

    @property
    def global_tags_map(self) -> Dict[str, str]:
        """Parse ``key=value`` pairs; entries without ``=`` are ignored."""
        tags: Dict[str, str] = {}
        for item in _split_csv(self.global_tags):
            key, sep, value = item.partition("=")
            if sep and key.strip():
                tags[key.strip()] = value.strip()
        return tags

    @field_validator("instrumentation_key")
    @classmethod
    def strip_instrumentation_key(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("exporters_enabled", "formatters_enabled")
    @classmethod
    def normalize_csv(cls, v: str) -> str:
        return ",".join(item.lower() for item in _split_csv(v))


def _split_csv(value: str) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def get_instrumentation_key(settings: Settings) -> str:
    """Return the validated Application Insights key.

    Raises:
        InvalidInstrumentationKeyError: if the key is empty, not a GUID, or
            the all-zero GUID.
    """
    key = settings.instrumentation_key
    if not key:
        raise InvalidInstrumentationKeyError()
    try:
        parsed = uuid.UUID(key)
    except ValueError as exc:
        raise InvalidInstrumentationKeyError(
            "Application Insights instrumentation key must be a GUID.",
            details={"instrumentation_key": key},
        ) from exc
    if parsed.int == 0:
        raise InvalidInstrumentationKeyError(
            "Application Insights instrumentation key must not be the empty GUID."
        )
    return key


def load_settings(config_file: Optional[str] = None, **overrides) -> Settings:
    """Build settings, reading ``config_file`` instead of the default JSON file.

    Raises:
        ConfigurationError: if the explicit config file does not exist.
    """
    if config_file is None:
        return Settings(**overrides)

    path = Path(config_file)
    if not path.is_file():
        raise ConfigurationError(
            "Configuration file not found", details={"path": str(path)}
        )

    class FileSettings(Settings):
        model_config = SettingsConfigDict(json_file=path)

    return FileSettings(**overrides)

