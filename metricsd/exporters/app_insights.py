"""Application Insights exporter (track API, MetricData envelopes)."""

from __future__ import annotations

from typing import Any

import httpx

from metricsd import __version__
from metricsd.core import ExportRejectedError
from metricsd.exporters.base import ExporterType
from metricsd.exporters.http_client import parse_json
from metricsd.exporters.http_json import HttpJsonExporter
from metricsd.metrics.snapshot import (
    CounterValue,
    DistributionSummary,
    GaugeValue,
    HistogramValue,
    InstrumentValue,
    MeterValue,
    MetricsSnapshot,
    TimerValue,
)

TRACK_PATH = "/v2/track"


class AppInsightsExporter(HttpJsonExporter):
    """Ships each instrument as a MetricData envelope to the ingestion endpoint."""

    def __init__(
        self,
        endpoint: str,
        instrumentation_key: str,
        timeout: int,
        max_retries: int,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            url=endpoint.rstrip("/") + TRACK_PATH,
            timeout=timeout,
            max_retries=max_retries,
            exporter_type=ExporterType.APP_INSIGHTS,
            display_name="Application Insights",
            transport=transport,
        )
        self.instrumentation_key = instrumentation_key
        self._envelope_name = (
            f"Microsoft.ApplicationInsights.{instrumentation_key.replace('-', '')}.Metric"
        )

    def build_payload(self, snapshot: MetricsSnapshot) -> list[dict[str, Any]] | None:
        time = snapshot.timestamp.isoformat().replace("+00:00", "Z")
        envelopes: list[dict[str, Any]] = []
        for value in snapshot.values:
            base_properties = dict(snapshot.global_tags)
            base_properties.update(value.descriptor.tags_dict)
            base_properties["context"] = snapshot.context
            if value.descriptor.unit:
                base_properties["unit"] = value.descriptor.unit
            for data_point, extra in _data_points(value):
                properties = {**base_properties, **extra}
                envelopes.append(self._envelope(time, snapshot.context, data_point, properties))
        return envelopes or None

    def _envelope(
        self,
        time: str,
        role: str,
        data_point: dict[str, Any],
        properties: dict[str, str],
    ) -> dict[str, Any]:
        return {
            "name": self._envelope_name,
            "time": time,
            "iKey": self.instrumentation_key,
            "tags": {
                "ai.cloud.role": role,
                "ai.internal.sdkVersion": f"metricsd:{__version__}",
            },
            "data": {
                "baseType": "MetricData",
                "baseData": {
                    "ver": 2,
                    "metrics": [data_point],
                    "properties": properties,
                },
            },
        }

    def check_response(self, response: httpx.Response) -> None:
        """Treat a partial accept (HTTP 206 or accepted < received) as a rejection."""
        body = parse_json(response)
        if not isinstance(body, dict):
            return
        received = body.get("itemsReceived")
        accepted = body.get("itemsAccepted")
        if isinstance(received, int) and isinstance(accepted, int) and accepted < received:
            raise ExportRejectedError(
                "Application Insights rejected some telemetry items",
                details={
                    "items_received": received,
                    "items_accepted": accepted,
                    "errors": (body.get("errors") or [])[:5],
                },
            )


def _data_points(value: InstrumentValue) -> list[tuple[dict[str, Any], dict[str, str]]]:
    """Map one instrument value to (data point, extra properties) pairs."""
    name = value.descriptor.name
    points: list[tuple[dict[str, Any], dict[str, str]]] = []

    if isinstance(value, CounterValue):
        points.append(({"name": name, "value": value.count}, {}))
        for item, count in value.items:
            points.append(({"name": name, "value": count}, {"item": item}))
    elif isinstance(value, GaugeValue):
        if value.value is not None:
            points.append(({"name": name, "value": value.value}, {}))
    elif isinstance(value, HistogramValue):
        if value.summary.count:
            points.append((_aggregate(name, value.summary), {}))
    elif isinstance(value, MeterValue):
        points.append(({"name": name, "value": value.rate.count}, {}))
        points.append(({"name": f"{name}_rate_m1", "value": value.rate.one_minute_rate}, {}))
        for item, rate in value.items:
            points.append(({"name": name, "value": rate.count}, {"item": item}))
    elif isinstance(value, TimerValue):
        if value.duration.count:
            points.append((_aggregate(name, value.duration), {}))
    return points


def _aggregate(name: str, summary: DistributionSummary) -> dict[str, Any]:
    return {
        "name": name,
        "value": summary.sum,
        "count": summary.count,
        "min": summary.min,
        "max": summary.max,
        "stdDev": summary.stddev or 0.0,
    }
