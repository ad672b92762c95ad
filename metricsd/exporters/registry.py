"""Exporter registry for enabled export targets."""

from __future__ import annotations

from collections.abc import Iterator

import httpx

from metricsd.config import Settings, get_instrumentation_key
from metricsd.core import get_logger
from metricsd.exporters.app_insights import AppInsightsExporter
from metricsd.exporters.base import ExporterType, MetricsExporter
from metricsd.exporters.http_json import HttpJsonExporter
from metricsd.exporters.log import LogExporter

logger = get_logger(__name__)


class ExporterRegistry:
    """Instantiate and manage enabled exporters.

    Raises:
        InvalidInstrumentationKeyError: when Application Insights is enabled
            without a usable key.
    """

    def __init__(
        self,
        settings: Settings,
        transport_overrides: dict[str, httpx.AsyncBaseTransport] | None = None,
    ):
        self.settings = settings
        self.exporters: dict[str, MetricsExporter] = {}
        self._transport_overrides = transport_overrides or {}
        self._initialize()

    def _transport(self, exporter_id: str) -> httpx.AsyncBaseTransport | None:
        return self._transport_overrides.get(exporter_id)

    def _initialize(self) -> None:
        if not self.settings.reporting_enabled:
            logger.warning("Reporting disabled; no exporters initialized")
            return

        for exporter_id in self.settings.enabled_exporters:
            exporter: MetricsExporter | None = None

            if exporter_id == ExporterType.APP_INSIGHTS.value:
                exporter = AppInsightsExporter(
                    endpoint=self.settings.app_insights_endpoint,
                    instrumentation_key=get_instrumentation_key(self.settings),
                    timeout=self.settings.export_timeout_seconds,
                    max_retries=self.settings.export_max_retries,
                    transport=self._transport(exporter_id),
                )
            elif exporter_id == ExporterType.HTTP.value:
                if not self.settings.http_export_url:
                    logger.warning("HTTP_EXPORT_URL not set; skipping exporter initialization")
                    continue
                exporter = HttpJsonExporter(
                    url=self.settings.http_export_url,
                    timeout=self.settings.export_timeout_seconds,
                    max_retries=self.settings.export_max_retries,
                    transport=self._transport(exporter_id),
                )
            elif exporter_id == ExporterType.LOG.value:
                exporter = LogExporter()
            else:
                logger.warning("Unknown exporter id in configuration", data={"id": exporter_id})

            if exporter:
                self.exporters[exporter.name] = exporter

        logger.info(
            "Exporter registry initialized",
            data={"exporters": list(self.exporters.keys())},
        )

    def __iter__(self) -> Iterator[MetricsExporter]:
        return iter(list(self.exporters.values()))

    def __len__(self) -> int:
        return len(self.exporters)

    async def aclose(self) -> None:
        """Close all exporter clients."""
        for exporter in self.exporters.values():
            try:
                await exporter.aclose()
            except Exception:  # pragma: no cover
                logger.warning("Error closing exporter client", data={"exporter": exporter.name})
