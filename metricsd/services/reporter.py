"""Reporter: periodic and on-demand export passes."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable, Iterable

from metricsd.core import (
    AppError,
    CancellationToken,
    ErrorCode,
    ExportFailedError,
    RunCounters,
    Tick,
    TickObserver,
    WaitOutcome,
    get_logger,
    ignore_ticks,
    pass_id_ctx,
    task_name_ctx,
)
from metricsd.exporters import MetricsExporter
from metricsd.metrics import MetricsSnapshot, MetricsStore

logger = get_logger(__name__)


class Reporter:
    """
    Pushes store snapshots to every enabled exporter.

    A pass takes one snapshot and hands it to all exporters concurrently. The
    periodic loop runs a pass every ``interval`` seconds; :meth:`report_now`
    runs one on demand. On-demand requests that arrive while another on-demand
    pass is in flight join that pass rather than starting a second one.
    """

    def __init__(
        self,
        exporters: Iterable[MetricsExporter],
        store: MetricsStore,
        counters: RunCounters,
        cancellation: CancellationToken,
        interval: float,
        *,
        on_tick: TickObserver = ignore_ticks,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = interval
        self._exporters = exporters
        self._store = store
        self._counters = counters
        self._cancellation = cancellation
        self._on_tick = on_tick
        self._clock = clock
        self._on_demand: asyncio.Task[MetricsSnapshot] | None = None

    async def run_all(self) -> MetricsSnapshot:
        """Run one export pass across all exporters.

        Waits for every exporter to finish, then raises ExportFailedError if
        any of them failed. Returns the snapshot that was exported.
        """
        pass_id = uuid.uuid4().hex[:8]
        token = pass_id_ctx.set(pass_id)
        try:
            exporters = list(self._exporters)
            snapshot = self._store.snapshot()
            if not exporters:
                logger.debug("No exporters enabled; nothing to report")
                return snapshot

            results = await asyncio.gather(
                *(exporter.export(snapshot) for exporter in exporters),
                return_exceptions=True,
            )

            failures: dict[str, AppError] = {}
            for exporter, result in zip(exporters, results):
                if result is None:
                    continue
                if isinstance(result, AppError):
                    failures[exporter.name] = result
                elif isinstance(result, Exception):
                    logger.error(
                        "Unexpected exporter error",
                        exc_info=result,
                        data={"exporter": exporter.name},
                    )
                    failures[exporter.name] = AppError(
                        ErrorCode.INTERNAL_ERROR,
                        "Unexpected exporter error",
                        details={"reason": str(result)},
                    )
                else:
                    raise result

            if failures:
                raise ExportFailedError(failures, pass_id=pass_id)

            logger.debug(
                "Report pass completed",
                data={"exporters": [exporter.name for exporter in exporters]},
            )
            return snapshot
        finally:
            pass_id_ctx.reset(token)

    async def report_now(self) -> MetricsSnapshot:
        """Run an on-demand pass, joining one that is already in flight."""
        if self._on_demand is None or self._on_demand.done():
            self._on_demand = asyncio.create_task(self.run_all(), name="report-now")
        else:
            logger.debug("On-demand report already running; joining it")
        # Shielded so a cancelled caller does not abort the shared pass.
        return await asyncio.shield(self._on_demand)

    async def run(self) -> None:
        """Report every ``interval`` seconds until cancelled."""
        task_name_ctx.set("reporter")
        logger.info("Reporter started", data={"interval_seconds": self.interval})

        next_wake = self._clock() + self.interval
        while True:
            outcome = await self._cancellation.wait(next_wake - self._clock())
            if outcome is WaitOutcome.CANCELLED:
                break

            started = self._clock()
            try:
                await self.run_all()
            except AppError as exc:
                logger.warning(
                    "Periodic report failed",
                    data=exc.to_report(getattr(exc, "pass_id", None)).to_dict(),
                )
            except Exception:
                logger.exception("Unexpected error during periodic report")
            else:
                self._counters.increment_flushes()
                self._on_tick(Tick.FLUSHED)

            next_wake += self.interval
            now = self._clock()
            if next_wake <= now:
                logger.warning(
                    "Report pass overran its interval; starting the next pass immediately",
                    data={
                        "interval_seconds": self.interval,
                        "elapsed_seconds": round(now - started, 3),
                    },
                )
                next_wake = now

        logger.debug("Report task cancelled", data={"flushes": self._counters.flush_count})
