"""Background loops and operator-facing services."""

from metricsd.services.printer import SnapshotPrinter
from metricsd.services.recorder import Recorder
from metricsd.services.reporter import Reporter

__all__ = ["Recorder", "Reporter", "SnapshotPrinter"]
