"""
metricsd control surface and CLI entry point.

Owns the daemon lifecycle: starts the recorder and reporter loops, routes
operator commands, performs a bounded shutdown and prints the run summary.
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TextIO

from pydantic import ValidationError

from metricsd import __version__
from metricsd.config import Settings, load_settings
from metricsd.console import (
    KeySource,
    OperatorCommand,
    TerminalKeyReader,
    install_signal_handlers,
    parse_key,
)
from metricsd.context import DaemonContext, build_context
from metricsd.core import (
    AppError,
    ConfigurationError,
    ExportFailedError,
    get_logger,
    setup_logging,
    task_name_ctx,
)
from metricsd.services import Recorder, Reporter, SnapshotPrinter

logger = get_logger(__name__)

HELP_TEXT = (
    "metricsd is recording metrics.\n"
    "  p    print the current metrics\n"
    "  r    report the metrics now\n"
    "  Esc  exit\n"
)


class DaemonState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class RunSummary:
    """Totals reported when the daemon stops."""

    elapsed_seconds: float
    record_count: int
    flush_count: int

    def format(self) -> str:
        return (
            f"In {format_elapsed(self.elapsed_seconds)} the metrics have been recorded "
            f"{self.record_count} times and flushed {self.flush_count} times."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "record_count": self.record_count,
            "flush_count": self.flush_count,
        }


def format_elapsed(seconds: float) -> str:
    """Render a duration as HH:MM:SS.mmm."""
    minutes, secs = divmod(max(seconds, 0.0), 60)
    hours, minutes = divmod(int(minutes), 60)
    return f"{hours:02d}:{minutes:02d}:{secs:06.3f}"


class MetricsDaemon:
    """
    Lifecycle owner for one run.

    States move idle -> running -> shutting_down -> terminated and never go
    back. Shutdown cancels the shared token once, then waits at most
    ``shutdown_timeout_seconds`` for both loops before giving up on them.
    """

    def __init__(
        self,
        context: DaemonContext,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.context = context
        self.state = DaemonState.IDLE
        self._clock = clock
        settings = context.settings

        self.recorder = Recorder(
            context.store,
            context.counters,
            context.cancellation,
            settings.record_interval_seconds,
            rng=rng,
            on_tick=context.on_tick,
        )
        self.reporter = Reporter(
            context.exporters,
            context.store,
            context.counters,
            context.cancellation,
            settings.report_interval_seconds,
            on_tick=context.on_tick,
        )
        self.printer = SnapshotPrinter(context.store, context.formatters, context.stream)

        self._tasks: list[asyncio.Task[None]] = []
        self._started_at: float | None = None
        self._summary: RunSummary | None = None
        self._terminated = asyncio.Event()

    def start(self) -> None:
        """Start the recorder and reporter tasks."""
        if self.state is not DaemonState.IDLE:
            raise RuntimeError(f"Cannot start daemon in state {self.state.value}")
        self._started_at = self._clock()
        self._tasks = [
            asyncio.create_task(self.recorder.run(), name="recorder"),
            asyncio.create_task(self.reporter.run(), name="reporter"),
        ]
        self.state = DaemonState.RUNNING
        logger.info(
            "Daemon started",
            data={
                "record_interval_seconds": self.recorder.interval,
                "report_interval_seconds": self.reporter.interval,
                "exporters": [exporter.name for exporter in self.context.exporters],
            },
        )

    async def handle(self, command: OperatorCommand) -> None:
        """Dispatch one operator command."""
        if self.state is not DaemonState.RUNNING:
            logger.debug("Ignoring command; daemon not running", data={"command": command.value})
            return

        if command is OperatorCommand.PRINT:
            self.printer.print_snapshot()
        elif command is OperatorCommand.REPORT:
            await self._report_now()
        elif command is OperatorCommand.EXIT:
            await self.shutdown()

    async def _report_now(self) -> None:
        try:
            await self.reporter.report_now()
        except AppError as exc:
            report = exc.to_report(getattr(exc, "pass_id", None))
            logger.warning("On-demand report failed", data=report.to_dict())
            lines = [f"Report failed: {exc}"]
            if isinstance(exc, ExportFailedError):
                lines.extend(f"  {name}: {error}" for name, error in exc.failures.items())
            self._write("\n" + "\n".join(lines) + "\n")
        except Exception as exc:
            logger.exception("Unexpected error during on-demand report")
            self._write(f"\nReport failed: {exc}\n")
        else:
            logger.info("On-demand report completed")
            self._write("\nMetrics reported.\n")

    async def shutdown(self) -> RunSummary:
        """Stop both loops and return the run summary.

        Safe to call more than once; later calls return the same summary.
        """
        if self.state is DaemonState.TERMINATED:
            assert self._summary is not None
            return self._summary
        if self.state is DaemonState.SHUTTING_DOWN:
            await self._terminated.wait()
            assert self._summary is not None
            return self._summary

        self.state = DaemonState.SHUTTING_DOWN
        logger.info("Shutting down daemon")
        self.context.cancellation.cancel()

        if self._tasks:
            timeout = self.context.settings.shutdown_timeout_seconds
            done, pending = await asyncio.wait(self._tasks, timeout=timeout)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.error(
                        "Background task failed",
                        exc_info=task.exception(),
                        data={"task": task.get_name()},
                    )
            if pending:
                logger.warning(
                    "Background tasks did not stop within the shutdown timeout",
                    data={
                        "tasks": sorted(task.get_name() for task in pending),
                        "timeout_seconds": timeout,
                    },
                )
                for task in pending:
                    task.cancel()

        started_at = self._started_at if self._started_at is not None else self._clock()
        self._summary = RunSummary(
            elapsed_seconds=self._clock() - started_at,
            record_count=self.context.counters.record_count,
            flush_count=self.context.counters.flush_count,
        )
        self.state = DaemonState.TERMINATED
        self._terminated.set()
        logger.info("Daemon terminated", data=self._summary.to_dict())
        return self._summary

    async def run(self, keys: KeySource) -> RunSummary:
        """Run until the operator exits or input closes, then print the summary."""
        task_name_ctx.set("control")
        self.start()
        print_help(self.context.stream)
        try:
            while self.state is DaemonState.RUNNING:
                key = await keys.next_key()
                if key is None:
                    logger.info("Operator input closed")
                    break
                command = parse_key(key)
                if command is None:
                    continue
                await self.handle(command)
        finally:
            summary = await self.shutdown()
            self._write("\n" + summary.format() + "\n")
        return summary

    def _write(self, text: str) -> None:
        self.context.stream.write(text)
        self.context.stream.flush()


def print_help(stream: TextIO) -> None:
    stream.write(HELP_TEXT)
    stream.flush()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="metricsd",
        description="Record sample metrics and report them to Application Insights.",
    )
    parser.add_argument("--config", help="Path to a JSON settings file (default: appsettings.json)")
    parser.add_argument("--record-interval", type=float, dest="record_interval_seconds")
    parser.add_argument("--report-interval", type=float, dest="report_interval_seconds")
    parser.add_argument("--log-level", dest="log_level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


async def _serve(settings: Settings) -> RunSummary:
    context = build_context(settings)
    daemon = MetricsDaemon(context)
    try:
        with TerminalKeyReader() as keys:
            install_signal_handlers(keys)
            return await daemon.run(keys)
    finally:
        await context.exporters.aclose()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit status."""
    args = parse_args(argv)
    overrides = {
        key: value
        for key, value in vars(args).items()
        if key != "config" and value is not None
    }

    try:
        settings = load_settings(args.config, **overrides)
    except ConfigurationError as exc:
        print(f"Fatal: {exc}", file=sys.stderr)
        return 1
    except ValidationError as exc:
        print(f"Fatal: invalid configuration\n{exc}", file=sys.stderr)
        return 1

    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        log_file=settings.log_file or None,
        console=settings.log_console,
    )
    logger.info("Starting metricsd", data={"version": __version__})

    try:
        asyncio.run(_serve(settings))
    except ConfigurationError as exc:
        logger.error("Fatal startup error", data=exc.to_report().to_dict())
        print(f"Fatal: {exc}", file=sys.stderr)
        return 1
    return 0
