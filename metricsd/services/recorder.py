"""Recorder loop: writes synthetic instrument values on a fixed cadence."""

from __future__ import annotations

import random
import time
from collections.abc import Callable

from metricsd.core import (
    CancellationToken,
    RunCounters,
    Tick,
    TickObserver,
    WaitOutcome,
    get_logger,
    ignore_ticks,
    task_name_ctx,
)
from metricsd.metrics import MetricsStore, SampleInstruments

logger = get_logger(__name__)

METER_ITEMS = ("failures", "errors")


class Recorder:
    """
    Self-correcting periodic writer.

    Each round touches the sample instruments in a fixed order. When a round
    finishes early the loop waits out the rest of the interval; when it
    overruns, the next round starts immediately and a warning is logged, so
    delayed rounds never pile up.
    """

    def __init__(
        self,
        store: MetricsStore,
        counters: RunCounters,
        cancellation: CancellationToken,
        interval: float,
        *,
        rng: random.Random | None = None,
        on_tick: TickObserver = ignore_ticks,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = interval
        self._store = store
        self._counters = counters
        self._cancellation = cancellation
        # One generator per recorder task, reused for every round.
        self._rng = rng or random.Random()
        self._on_tick = on_tick
        self._clock = clock

    async def record_round(self) -> bool:
        """Write one round of values. Returns False if cancelled mid-round."""
        rng = self._rng
        store = self._store

        store.increment(SampleInstruments.COUNTER_ONE)
        store.increment(SampleInstruments.COUNTER_TWO, rng.randrange(1, 4))
        store.set_gauge(SampleInstruments.GAUGE_ONE, rng.randrange(0, 201))
        store.update_histogram(SampleInstruments.HISTOGRAM_ONE, rng.randrange(0, 201))
        item = METER_ITEMS[0] if rng.randrange(0, 2) == 0 else METER_ITEMS[1]
        store.mark(SampleInstruments.METER_ONE, rng.randrange(0, 6), item)

        with store.time(SampleInstruments.TIMER_ONE):
            outcome = await self._cancellation.wait(rng.randrange(0, 101) / 1000.0)
        return outcome is WaitOutcome.ELAPSED

    async def run(self) -> None:
        """Record rounds until the cancellation token fires."""
        task_name_ctx.set("recorder")
        logger.info("Recorder started", data={"interval_seconds": self.interval})

        while not self._cancellation.cancelled:
            started = self._clock()
            try:
                if not await self.record_round():
                    break
            except Exception:
                logger.exception("Recording round failed")
            else:
                self._counters.increment_records()
                self._on_tick(Tick.RECORDED)

            elapsed = self._clock() - started
            remaining = self.interval - elapsed
            if remaining <= 0:
                logger.warning(
                    "Record round overran its interval; starting the next round immediately",
                    data={"interval_seconds": self.interval, "elapsed_seconds": round(elapsed, 3)},
                )
                continue

            if await self._cancellation.wait(remaining) is WaitOutcome.CANCELLED:
                break

        logger.debug("Record task cancelled", data={"rounds": self._counters.record_count})
