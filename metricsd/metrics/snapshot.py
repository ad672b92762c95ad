"""Immutable point-in-time views of the metrics store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from metricsd.metrics.instruments import InstrumentDescriptor, InstrumentKind


@dataclass(frozen=True)
class DistributionSummary:
    """Summary statistics over a histogram or timer reservoir."""

    count: int = 0
    sum: float = 0.0
    min: float | None = None
    max: float | None = None
    last: float | None = None
    mean: float | None = None
    stddev: float | None = None
    median: float | None = None
    p75: float | None = None
    p95: float | None = None
    p99: float | None = None
    sample_size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "sum": self.sum,
            "min": self.min,
            "max": self.max,
            "last": self.last,
            "mean": self.mean,
            "stddev": self.stddev,
            "median": self.median,
            "p75": self.p75,
            "p95": self.p95,
            "p99": self.p99,
            "sample_size": self.sample_size,
        }


@dataclass(frozen=True)
class RateSummary:
    """Event count with mean and exponentially weighted rates (per second)."""

    count: int = 0
    mean_rate: float = 0.0
    one_minute_rate: float = 0.0
    five_minute_rate: float = 0.0
    fifteen_minute_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "mean_rate": self.mean_rate,
            "m1_rate": self.one_minute_rate,
            "m5_rate": self.five_minute_rate,
            "m15_rate": self.fifteen_minute_rate,
        }


@dataclass(frozen=True)
class CounterValue:
    descriptor: InstrumentDescriptor
    count: int
    items: tuple[tuple[str, int], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "items": dict(self.items)}


@dataclass(frozen=True)
class GaugeValue:
    descriptor: InstrumentDescriptor
    value: float | None

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value}


@dataclass(frozen=True)
class HistogramValue:
    descriptor: InstrumentDescriptor
    summary: DistributionSummary

    def to_dict(self) -> dict[str, Any]:
        return self.summary.to_dict()


@dataclass(frozen=True)
class MeterValue:
    descriptor: InstrumentDescriptor
    rate: RateSummary
    items: tuple[tuple[str, RateSummary], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = self.rate.to_dict()
        data["items"] = {item: rate.to_dict() for item, rate in self.items}
        return data


@dataclass(frozen=True)
class TimerValue:
    descriptor: InstrumentDescriptor
    duration: DistributionSummary
    rate: RateSummary

    def to_dict(self) -> dict[str, Any]:
        return {"duration": self.duration.to_dict(), "rate": self.rate.to_dict()}


InstrumentValue = Union[CounterValue, GaugeValue, HistogramValue, MeterValue, TimerValue]


@dataclass(frozen=True)
class MetricsSnapshot:
    """All instrument values at one point in time, in registry order."""

    timestamp: datetime
    context: str
    values: tuple[InstrumentValue, ...]
    global_tags: tuple[tuple[str, str], ...] = field(default=())

    def get(self, name: str, kind: InstrumentKind | None = None) -> InstrumentValue | None:
        for value in self.values:
            if value.descriptor.name == name and (kind is None or value.descriptor.kind == kind):
                return value
        return None

    def of_kind(self, kind: InstrumentKind) -> list[InstrumentValue]:
        return [value for value in self.values if value.descriptor.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        """Serialize as ``{timestamp, context, tags, metrics: {kind: [...]}}``."""
        metrics: dict[str, list[dict[str, Any]]] = {kind.value: [] for kind in InstrumentKind}
        for value in self.values:
            entry: dict[str, Any] = {"name": value.descriptor.name}
            if value.descriptor.tags:
                entry["tags"] = value.descriptor.tags_dict
            if value.descriptor.unit:
                entry["unit"] = value.descriptor.unit
            entry.update(value.to_dict())
            metrics[value.descriptor.kind.value].append(entry)
        return {
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "tags": dict(self.global_tags),
            "metrics": metrics,
        }
