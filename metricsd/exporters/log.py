"""Exporter that writes a compact snapshot summary to the log."""

from __future__ import annotations

from metricsd.core import get_logger
from metricsd.exporters.base import ExporterType, MetricsExporter
from metricsd.metrics.snapshot import MetricsSnapshot

logger = get_logger(__name__)


class LogExporter(MetricsExporter):
    """Useful when no remote sink is reachable."""

    exporter_type = ExporterType.LOG

    def __init__(self) -> None:
        self.display_name = "Log"

    async def export(self, snapshot: MetricsSnapshot) -> None:
        logger.info("Metrics snapshot", data=snapshot.to_dict())
