"""Explicit daemon context built once at startup."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import TextIO

import httpx

from metricsd.config import Settings
from metricsd.core import CancellationToken, RunCounters, TickObserver, console_ticks
from metricsd.exporters import ExporterRegistry
from metricsd.formatters import MetricsFormatter, build_formatters
from metricsd.metrics import InstrumentRegistry, MetricsStore


@dataclass
class DaemonContext:
    """Everything the loops and the control surface share.

    Passed explicitly to each component; nothing here is a module global.
    """

    settings: Settings
    instruments: InstrumentRegistry
    store: MetricsStore
    exporters: ExporterRegistry
    formatters: list[MetricsFormatter]
    counters: RunCounters
    cancellation: CancellationToken
    stream: TextIO
    on_tick: TickObserver


def build_context(
    settings: Settings,
    *,
    transport_overrides: dict[str, httpx.AsyncBaseTransport] | None = None,
    stream: TextIO | None = None,
) -> DaemonContext:
    """Wire up the registry, store, exporters and formatters.

    Raises:
        ConfigurationError: if an enabled exporter is misconfigured.
    """
    stream = stream or sys.stdout
    instruments = InstrumentRegistry.with_samples()
    store = MetricsStore(
        instruments,
        context=settings.metrics_context,
        global_tags=settings.global_tags_map,
    )
    exporters = ExporterRegistry(settings, transport_overrides=transport_overrides)
    return DaemonContext(
        settings=settings,
        instruments=instruments,
        store=store,
        exporters=exporters,
        formatters=build_formatters(settings.enabled_formatters),
        counters=RunCounters(),
        cancellation=CancellationToken(),
        stream=stream,
        on_tick=console_ticks(stream),
    )
