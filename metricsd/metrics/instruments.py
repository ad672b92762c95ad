"""
Instrument identity.

Descriptors are created once at startup and shared read-only by the
recorder, the store and the exporters.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from metricsd.core.errors import UnknownInstrumentError


class InstrumentKind(str, Enum):
    """Supported instrument kinds."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    METER = "meter"
    TIMER = "timer"


@dataclass(frozen=True)
class InstrumentDescriptor:
    """Immutable identity of a named metric."""

    kind: InstrumentKind
    name: str
    tags: tuple[tuple[str, str], ...] = ()
    unit: str | None = None

    @property
    def key(self) -> tuple[InstrumentKind, str]:
        return (self.kind, self.name)

    @property
    def tags_dict(self) -> dict[str, str]:
        return dict(self.tags)


def counter(name: str, tags: dict[str, str] | None = None, unit: str | None = "calls") -> InstrumentDescriptor:
    return InstrumentDescriptor(InstrumentKind.COUNTER, name, tuple((tags or {}).items()), unit)


def gauge(name: str, tags: dict[str, str] | None = None, unit: str | None = None) -> InstrumentDescriptor:
    return InstrumentDescriptor(InstrumentKind.GAUGE, name, tuple((tags or {}).items()), unit)


def histogram(name: str, tags: dict[str, str] | None = None, unit: str | None = None) -> InstrumentDescriptor:
    return InstrumentDescriptor(InstrumentKind.HISTOGRAM, name, tuple((tags or {}).items()), unit)


def meter(name: str, tags: dict[str, str] | None = None, unit: str | None = "events") -> InstrumentDescriptor:
    return InstrumentDescriptor(InstrumentKind.METER, name, tuple((tags or {}).items()), unit)


def timer(name: str, tags: dict[str, str] | None = None, unit: str | None = "ms") -> InstrumentDescriptor:
    return InstrumentDescriptor(InstrumentKind.TIMER, name, tuple((tags or {}).items()), unit)


class SampleInstruments:
    """The fixed instrument set written by the recorder."""

    COUNTER_ONE = counter("counter_one")
    COUNTER_TWO = counter("counter_two")
    GAUGE_ONE = gauge("gauge_one", tags={"prop1": "alpha", "prop2": "beta"})
    HISTOGRAM_ONE = histogram("histogram_one")
    METER_ONE = meter("meter_one")
    TIMER_ONE = timer("timer_one")

    @classmethod
    def all(cls) -> list[InstrumentDescriptor]:
        return [
            cls.COUNTER_ONE,
            cls.COUNTER_TWO,
            cls.GAUGE_ONE,
            cls.HISTOGRAM_ONE,
            cls.METER_ONE,
            cls.TIMER_ONE,
        ]


class InstrumentRegistry:
    """Ordered set of descriptors, keyed by (kind, name)."""

    def __init__(self, descriptors: Iterable[InstrumentDescriptor] = ()):
        self._descriptors: dict[tuple[InstrumentKind, str], InstrumentDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    @classmethod
    def with_samples(cls) -> InstrumentRegistry:
        return cls(SampleInstruments.all())

    def register(self, descriptor: InstrumentDescriptor) -> InstrumentDescriptor:
        """Add a descriptor; registering the same name twice for a kind fails."""
        existing = self._descriptors.get(descriptor.key)
        if existing is not None:
            if existing == descriptor:
                return existing
            raise ValueError(
                f"{descriptor.kind.value} '{descriptor.name}' is already registered"
            )
        self._descriptors[descriptor.key] = descriptor
        return descriptor

    def get(self, kind: InstrumentKind, name: str) -> InstrumentDescriptor:
        """Resolve a descriptor or raise UnknownInstrumentError."""
        descriptor = self._descriptors.get((kind, name))
        if descriptor is None:
            raise UnknownInstrumentError(f"{kind.value} '{name}' is not registered")
        return descriptor

    def __contains__(self, descriptor: object) -> bool:
        return (
            isinstance(descriptor, InstrumentDescriptor)
            and self._descriptors.get(descriptor.key) == descriptor
        )

    def __iter__(self) -> Iterator[InstrumentDescriptor]:
        return iter(list(self._descriptors.values()))

    def __len__(self) -> int:
        return len(self._descriptors)
