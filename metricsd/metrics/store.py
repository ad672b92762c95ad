"""
In-process aggregation state for every registered instrument.

Each instrument owns a slot with its own lock, so every update and every
read of a single instrument is atomic. Snapshots read slots one at a time;
two instruments in the same snapshot may straddle a recorder round.
"""

from __future__ import annotations

import math
import statistics
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from types import TracebackType

from metricsd.core.errors import InstrumentKindMismatchError, UnknownInstrumentError
from metricsd.metrics.instruments import InstrumentDescriptor, InstrumentKind, InstrumentRegistry
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

RESERVOIR_SIZE = 1028
TICK_INTERVAL_SECONDS = 5.0

Clock = Callable[[], float]


class _Ewma:
    """Exponentially weighted moving average of an event rate."""

    def __init__(self, minutes: float) -> None:
        self._alpha = 1.0 - math.exp(-TICK_INTERVAL_SECONDS / 60.0 / minutes)
        self._uncounted = 0
        self._rate = 0.0
        self._initialized = False

    def update(self, n: int) -> None:
        self._uncounted += n

    def tick(self) -> None:
        instant_rate = self._uncounted / TICK_INTERVAL_SECONDS
        self._uncounted = 0
        if self._initialized:
            self._rate += self._alpha * (instant_rate - self._rate)
        else:
            self._rate = instant_rate
            self._initialized = True

    @property
    def rate(self) -> float:
        return self._rate


class _RateTracker:
    """Count plus mean and 1/5/15-minute rates, ticked lazily."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._start = clock()
        self._last_tick = self._start
        self._count = 0
        self._m1 = _Ewma(1)
        self._m5 = _Ewma(5)
        self._m15 = _Ewma(15)

    def mark(self, n: int) -> None:
        self._tick_if_necessary()
        self._count += n
        self._m1.update(n)
        self._m5.update(n)
        self._m15.update(n)

    def _tick_if_necessary(self) -> None:
        age = self._clock() - self._last_tick
        if age < TICK_INTERVAL_SECONDS:
            return
        ticks = int(age // TICK_INTERVAL_SECONDS)
        self._last_tick += ticks * TICK_INTERVAL_SECONDS
        for _ in range(ticks):
            self._m1.tick()
            self._m5.tick()
            self._m15.tick()

    def summary(self) -> RateSummary:
        self._tick_if_necessary()
        elapsed = self._clock() - self._start
        mean_rate = self._count / elapsed if self._count and elapsed > 0 else 0.0
        return RateSummary(
            count=self._count,
            mean_rate=mean_rate,
            one_minute_rate=self._m1.rate,
            five_minute_rate=self._m5.rate,
            fifteen_minute_rate=self._m15.rate,
        )


class _Distribution:
    """Running totals plus a sliding window of recent samples."""

    def __init__(self, reservoir_size: int = RESERVOIR_SIZE) -> None:
        self._samples: deque[float] = deque(maxlen=reservoir_size)
        self._count = 0
        self._sum = 0.0
        self._min: float | None = None
        self._max: float | None = None
        self._last: float | None = None

    def update(self, value: float) -> None:
        self._samples.append(value)
        self._count += 1
        self._sum += value
        self._min = value if self._min is None else min(self._min, value)
        self._max = value if self._max is None else max(self._max, value)
        self._last = value

    def summary(self) -> DistributionSummary:
        if not self._count:
            return DistributionSummary()
        ordered = sorted(self._samples)
        return DistributionSummary(
            count=self._count,
            sum=self._sum,
            min=self._min,
            max=self._max,
            last=self._last,
            mean=self._sum / self._count,
            stddev=statistics.pstdev(ordered) if len(ordered) > 1 else 0.0,
            median=_quantile(ordered, 0.5),
            p75=_quantile(ordered, 0.75),
            p95=_quantile(ordered, 0.95),
            p99=_quantile(ordered, 0.99),
            sample_size=len(ordered),
        )


def _quantile(ordered: list[float], q: float) -> float:
    return ordered[int(q * (len(ordered) - 1))]


class _Slot:
    def __init__(self, descriptor: InstrumentDescriptor, clock: Clock) -> None:
        self.descriptor = descriptor
        self.lock = threading.Lock()
        self.clock = clock

    def read(self) -> InstrumentValue:
        raise NotImplementedError


class _CounterSlot(_Slot):
    def __init__(self, descriptor: InstrumentDescriptor, clock: Clock) -> None:
        super().__init__(descriptor, clock)
        self.count = 0
        self.items: dict[str, int] = {}

    def increment(self, amount: int, item: str | None) -> None:
        with self.lock:
            self.count += amount
            if item is not None:
                self.items[item] = self.items.get(item, 0) + amount

    def read(self) -> CounterValue:
        with self.lock:
            return CounterValue(self.descriptor, self.count, tuple(self.items.items()))


class _GaugeSlot(_Slot):
    def __init__(self, descriptor: InstrumentDescriptor, clock: Clock) -> None:
        super().__init__(descriptor, clock)
        self.value: float | None = None

    def set(self, value: float) -> None:
        with self.lock:
            self.value = value

    def read(self) -> GaugeValue:
        with self.lock:
            return GaugeValue(self.descriptor, self.value)


class _HistogramSlot(_Slot):
    def __init__(self, descriptor: InstrumentDescriptor, clock: Clock) -> None:
        super().__init__(descriptor, clock)
        self.distribution = _Distribution()

    def update(self, value: float) -> None:
        with self.lock:
            self.distribution.update(value)

    def read(self) -> HistogramValue:
        with self.lock:
            return HistogramValue(self.descriptor, self.distribution.summary())


class _MeterSlot(_Slot):
    def __init__(self, descriptor: InstrumentDescriptor, clock: Clock) -> None:
        super().__init__(descriptor, clock)
        self.rate = _RateTracker(clock)
        self.items: dict[str, _RateTracker] = {}

    def mark(self, amount: int, item: str | None) -> None:
        with self.lock:
            self.rate.mark(amount)
            if item is not None:
                tracker = self.items.get(item)
                if tracker is None:
                    tracker = self.items[item] = _RateTracker(self.clock)
                tracker.mark(amount)

    def read(self) -> MeterValue:
        with self.lock:
            items = tuple((item, tracker.summary()) for item, tracker in self.items.items())
            return MeterValue(self.descriptor, self.rate.summary(), items)


class _TimerSlot(_Slot):
    def __init__(self, descriptor: InstrumentDescriptor, clock: Clock) -> None:
        super().__init__(descriptor, clock)
        self.duration = _Distribution()
        self.rate = _RateTracker(clock)

    def record(self, duration_ms: float) -> None:
        with self.lock:
            self.duration.update(duration_ms)
            self.rate.mark(1)

    def read(self) -> TimerValue:
        with self.lock:
            return TimerValue(self.descriptor, self.duration.summary(), self.rate.summary())


_SLOT_TYPES: dict[InstrumentKind, type[_Slot]] = {
    InstrumentKind.COUNTER: _CounterSlot,
    InstrumentKind.GAUGE: _GaugeSlot,
    InstrumentKind.HISTOGRAM: _HistogramSlot,
    InstrumentKind.METER: _MeterSlot,
    InstrumentKind.TIMER: _TimerSlot,
}


class TimerContext:
    """Context manager that records the elapsed time of its block in ms.

    The duration is recorded even if the block raises, matching how a
    disposable timer scope behaves.
    """

    def __init__(self, store: MetricsStore, descriptor: InstrumentDescriptor) -> None:
        self._store = store
        self._descriptor = descriptor
        self._started: float | None = None
        self.elapsed_ms: float | None = None

    def __enter__(self) -> TimerContext:
        self._started = self._store.clock()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        assert self._started is not None
        self.elapsed_ms = (self._store.clock() - self._started) * 1000.0
        self._store.record_time(self._descriptor, self.elapsed_ms)


class MetricsStore:
    """Thread-safe accumulator state backing every registered instrument."""

    def __init__(
        self,
        instruments: InstrumentRegistry,
        *,
        context: str = "application",
        global_tags: Mapping[str, str] | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.instruments = instruments
        self.context = context
        self.global_tags = tuple((global_tags or {}).items())
        self.clock = clock
        self._slots: dict[tuple[InstrumentKind, str], _Slot] = {
            descriptor.key: _SLOT_TYPES[descriptor.kind](descriptor, clock)
            for descriptor in instruments
        }

    def _slot(self, descriptor: InstrumentDescriptor, kind: InstrumentKind) -> _Slot:
        if descriptor.kind != kind:
            raise InstrumentKindMismatchError(
                f"'{descriptor.name}' is a {descriptor.kind.value}, not a {kind.value}",
                details={"name": descriptor.name, "kind": descriptor.kind.value},
            )
        slot = self._slots.get(descriptor.key)
        if slot is None:
            raise UnknownInstrumentError(f"{kind.value} '{descriptor.name}' is not registered")
        return slot

    def increment(
        self, descriptor: InstrumentDescriptor, amount: int = 1, item: str | None = None
    ) -> None:
        """Add ``amount`` to a counter (and to its ``item`` sub-total)."""
        slot = self._slot(descriptor, InstrumentKind.COUNTER)
        slot.increment(amount, item)  # type: ignore[attr-defined]

    def set_gauge(self, descriptor: InstrumentDescriptor, value: float) -> None:
        slot = self._slot(descriptor, InstrumentKind.GAUGE)
        slot.set(value)  # type: ignore[attr-defined]

    def update_histogram(self, descriptor: InstrumentDescriptor, value: float) -> None:
        slot = self._slot(descriptor, InstrumentKind.HISTOGRAM)
        slot.update(value)  # type: ignore[attr-defined]

    def mark(
        self, descriptor: InstrumentDescriptor, amount: int = 1, item: str | None = None
    ) -> None:
        """Mark ``amount`` events on a meter, optionally under an item label."""
        if amount < 0:
            raise ValueError("Meter marks must not be negative")
        slot = self._slot(descriptor, InstrumentKind.METER)
        slot.mark(amount, item)  # type: ignore[attr-defined]

    def record_time(self, descriptor: InstrumentDescriptor, duration_ms: float) -> None:
        slot = self._slot(descriptor, InstrumentKind.TIMER)
        slot.record(duration_ms)  # type: ignore[attr-defined]

    def time(self, descriptor: InstrumentDescriptor) -> TimerContext:
        """Time a block: ``with store.time(timer): ...``."""
        self._slot(descriptor, InstrumentKind.TIMER)
        return TimerContext(self, descriptor)

    def snapshot(self) -> MetricsSnapshot:
        """Copy every slot's current value into an immutable snapshot."""
        return MetricsSnapshot(
            timestamp=datetime.now(UTC),
            context=self.context,
            values=tuple(slot.read() for slot in self._slots.values()),
            global_tags=self.global_tags,
        )
