"""Export targets for metrics snapshots."""

from metricsd.exporters.app_insights import AppInsightsExporter
from metricsd.exporters.base import ExporterType, MetricsExporter
from metricsd.exporters.http_json import HttpJsonExporter
from metricsd.exporters.log import LogExporter
from metricsd.exporters.registry import ExporterRegistry

__all__ = [
    "AppInsightsExporter",
    "ExporterRegistry",
    "ExporterType",
    "HttpJsonExporter",
    "LogExporter",
    "MetricsExporter",
]
