"""Configuration module for metricsd."""

from metricsd.config.settings import (
    Settings,
    get_instrumentation_key,
    load_settings,
)

__all__ = ["Settings", "get_instrumentation_key", "load_settings"]
