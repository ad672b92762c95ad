"""Run counters reported in the shutdown summary."""

from __future__ import annotations

import threading


class RunCounters:
    """Thread-safe record/flush counters.

    ``record_count`` is bumped only by the recorder and ``flush_count`` only
    by the periodic reporter.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._record_count = 0
        self._flush_count = 0

    def increment_records(self) -> int:
        with self._lock:
            self._record_count += 1
            return self._record_count

    def increment_flushes(self) -> int:
        with self._lock:
            self._flush_count += 1
            return self._flush_count

    @property
    def record_count(self) -> int:
        with self._lock:
            return self._record_count

    @property
    def flush_count(self) -> int:
        with self._lock:
            return self._flush_count
