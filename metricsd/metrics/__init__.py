"""Instrument registry, metrics store and snapshots."""

from metricsd.metrics.instruments import (
    InstrumentDescriptor,
    InstrumentKind,
    InstrumentRegistry,
    SampleInstruments,
)
from metricsd.metrics.snapshot import (
    CounterValue,
    DistributionSummary,
    GaugeValue,
    HistogramValue,
    InstrumentValue,
    MeterValue,
    MetricsSnapshot,
    RateSummary,
    TimerValue,
)
from metricsd.metrics.store import MetricsStore, TimerContext

__all__ = [
    "CounterValue",
    "DistributionSummary",
    "GaugeValue",
    "HistogramValue",
    "InstrumentDescriptor",
    "InstrumentKind",
    "InstrumentRegistry",
    "InstrumentValue",
    "MeterValue",
    "MetricsSnapshot",
    "MetricsStore",
    "RateSummary",
    "SampleInstruments",
    "TimerContext",
    "TimerValue",
]
