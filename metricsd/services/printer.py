"""Console rendering of the current store contents."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TextIO

from metricsd.formatters import MetricsFormatter
from metricsd.metrics import MetricsStore


class SnapshotPrinter:
    """Writes one block per configured formatter, in configured order."""

    def __init__(self, store: MetricsStore, formatters: Sequence[MetricsFormatter], stream: TextIO):
        self._store = store
        self._formatters = list(formatters)
        self._stream = stream

    def print_snapshot(self) -> list[str]:
        snapshot = self._store.snapshot()
        blocks = [formatter.format(snapshot) for formatter in self._formatters]
        # Progress ticks leave the cursor mid-line.
        self._stream.write("\n")
        for block in blocks:
            self._stream.write(block + "\n")
        self._stream.flush()
        return blocks
