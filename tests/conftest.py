from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable

import pytest

from metricsd.config import Settings
from metricsd.exporters import ExporterType, MetricsExporter
from metricsd.metrics import InstrumentRegistry, MetricsSnapshot, MetricsStore

VALID_KEY = "2f1c6a4e-3b7d-4e8a-9c0f-5d6e7f8a9b0c"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubRandom:
    """Stands in for ``random.Random``: scripted ``randrange`` values, calls recorded."""

    def __init__(self, values: Iterable[int] | None = None):
        self._values = list(values or [])
        self.calls: list[tuple[int, int]] = []

    def randrange(self, start, stop=None, step=1):  # noqa: ANN001
        self.calls.append((start, stop))
        if self._values:
            return self._values.pop(0)
        return start


class MockExporter(MetricsExporter):
    """Exporter stub that records snapshots and optionally fails or blocks."""

    def __init__(
        self,
        exporter_type: ExporterType = ExporterType.LOG,
        error: Exception | None = None,
        delay: float = 0.0,
        on_export: Callable[[MetricsSnapshot], None] | None = None,
    ):
        self.exporter_type = exporter_type
        self.display_name = f"Mock {exporter_type.value}"
        self.error = error
        self.delay = delay
        self.on_export = on_export
        self.snapshots: list[MetricsSnapshot] = []
        self.closed = False

    async def export(self, snapshot: MetricsSnapshot) -> None:
        if self.on_export is not None:
            self.on_export(snapshot)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.snapshots.append(snapshot)
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


class ScriptedKeys:
    """Key source fed by the test; ``None`` ends input."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()

    def press(self, key: str | None) -> None:
        self._queue.put_nowait(key)

    async def next_key(self) -> str | None:
        return await self._queue.get()


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch) -> Callable[..., Settings]:
    """Build Settings without picking up a stray appsettings.json or .env."""
    monkeypatch.chdir(tmp_path)
    for name in ("INSTRUMENTATION_KEY", "EXPORTERS_ENABLED", "LOG_LEVEL", "RECORD_INTERVAL_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    def factory(**overrides) -> Settings:
        values = {"exporters_enabled": "log", "log_file": None}
        values.update(overrides)
        return Settings(**values)

    return factory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MetricsStore:
    return MetricsStore(InstrumentRegistry.with_samples(), clock=clock)

