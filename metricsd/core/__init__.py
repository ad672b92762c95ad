"""Core module with logging, error types, cancellation and run counters."""

from metricsd.core.cancellation import CancellationToken, WaitOutcome
from metricsd.core.counters import RunCounters
from metricsd.core.errors import (
    AppError,
    ConfigurationError,
    ErrorCode,
    ErrorReport,
    ExportFailedError,
    ExportRejectedError,
    ExporterAuthError,
    ExporterBadResponseError,
    ExporterError,
    ExporterUnavailableError,
    InstrumentKindMismatchError,
    InvalidInstrumentationKeyError,
    RateLimitError,
    UnknownInstrumentError,
)
from metricsd.core.logging import get_logger, pass_id_ctx, setup_logging, task_name_ctx
from metricsd.core.progress import Tick, TickObserver, console_ticks, ignore_ticks

__all__ = [
    "AppError",
    "CancellationToken",
    "ConfigurationError",
    "ErrorCode",
    "ErrorReport",
    "ExportFailedError",
    "ExportRejectedError",
    "ExporterAuthError",
    "ExporterBadResponseError",
    "ExporterError",
    "ExporterUnavailableError",
    "InstrumentKindMismatchError",
    "InvalidInstrumentationKeyError",
    "RateLimitError",
    "RunCounters",
    "Tick",
    "TickObserver",
    "UnknownInstrumentError",
    "WaitOutcome",
    "console_ticks",
    "get_logger",
    "ignore_ticks",
    "pass_id_ctx",
    "setup_logging",
    "task_name_ctx",
]
