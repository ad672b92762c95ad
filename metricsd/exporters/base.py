"""
Base exporter interface.

Defines the contract every export target implements.
"""

from abc import ABC, abstractmethod
from enum import Enum

from metricsd.metrics.snapshot import MetricsSnapshot


class ExporterType(str, Enum):
    """Supported export targets."""

    APP_INSIGHTS = "app_insights"
    HTTP = "http"
    LOG = "log"


class MetricsExporter(ABC):
    """
    Abstract base class for export targets.

    An exporter receives an immutable snapshot per call and keeps no
    per-pass state, so periodic and on-demand passes may call it
    concurrently.
    """

    exporter_type: ExporterType
    display_name: str = ""

    @property
    def name(self) -> str:
        return self.exporter_type.value

    async def aclose(self) -> None:
        """Close any underlying resources (optional)."""
        return None

    @abstractmethod
    async def export(self, snapshot: MetricsSnapshot) -> None:
        """
        Ship a snapshot to the target.

        Raises:
            AppError: a subclass describing why the export failed
        """
        ...
