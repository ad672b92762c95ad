"""Tests for the metrics store and snapshots."""

from __future__ import annotations

import math
import threading

import pytest

from metricsd.core import ErrorCode, InstrumentKindMismatchError, UnknownInstrumentError
from metricsd.metrics import (
    CounterValue,
    GaugeValue,
    HistogramValue,
    InstrumentKind,
    InstrumentRegistry,
    MeterValue,
    MetricsStore,
    SampleInstruments,
    TimerValue,
)
from metricsd.metrics.instruments import counter, timer
from metricsd.metrics.store import RESERVOIR_SIZE


def test_fresh_store_snapshot_has_empty_values(store: MetricsStore) -> None:
    snapshot = store.snapshot()

    assert len(snapshot.values) == 6
    assert snapshot.get("counter_one").count == 0
    assert snapshot.get("gauge_one").value is None
    assert snapshot.get("histogram_one").summary.count == 0
    assert snapshot.get("histogram_one").summary.mean is None


def test_counter_tracks_total_and_items(store: MetricsStore) -> None:
    store.increment(SampleInstruments.COUNTER_TWO, 3)
    store.increment(SampleInstruments.COUNTER_TWO, 2, item="retry")

    value = store.snapshot().get("counter_two")

    assert isinstance(value, CounterValue)
    assert value.count == 5
    assert dict(value.items) == {"retry": 2}


def test_gauge_keeps_last_value(store: MetricsStore) -> None:
    store.set_gauge(SampleInstruments.GAUGE_ONE, 10)
    store.set_gauge(SampleInstruments.GAUGE_ONE, 42)

    value = store.snapshot().get("gauge_one")

    assert isinstance(value, GaugeValue)
    assert value.value == 42


def test_histogram_summary_statistics(store: MetricsStore) -> None:
    for sample in [5, 1, 4, 2, 3]:
        store.update_histogram(SampleInstruments.HISTOGRAM_ONE, sample)

    value = store.snapshot().get("histogram_one")

    assert isinstance(value, HistogramValue)
    summary = value.summary
    assert summary.count == 5
    assert summary.sum == 15
    assert summary.min == 1
    assert summary.max == 5
    assert summary.last == 3
    assert summary.mean == 3
    assert summary.median == 3
    assert summary.p75 == 4
    assert summary.stddev == pytest.approx(math.sqrt(2))


def test_histogram_reservoir_is_bounded(store: MetricsStore) -> None:
    for sample in range(2000):
        store.update_histogram(SampleInstruments.HISTOGRAM_ONE, sample)

    summary = store.snapshot().get("histogram_one").summary

    assert summary.count == 2000
    assert summary.sample_size == RESERVOIR_SIZE
    # Totals cover every update; percentiles only the window.
    assert summary.min == 0
    assert summary.median >= 2000 - RESERVOIR_SIZE


def test_meter_rates_after_tick(store: MetricsStore, clock) -> None:
    store.mark(SampleInstruments.METER_ONE, 10, item="errors")
    clock.advance(5.0)

    value = store.snapshot().get("meter_one")

    assert isinstance(value, MeterValue)
    assert value.rate.count == 10
    assert value.rate.mean_rate == pytest.approx(2.0)
    assert value.rate.one_minute_rate == pytest.approx(2.0)
    assert dict(value.items)["errors"].count == 10


def test_meter_rejects_negative_marks(store: MetricsStore) -> None:
    with pytest.raises(ValueError):
        store.mark(SampleInstruments.METER_ONE, -1)


def test_timer_records_block_duration(store: MetricsStore, clock) -> None:
    with store.time(SampleInstruments.TIMER_ONE) as scope:
        clock.advance(0.25)

    value = store.snapshot().get("timer_one")

    assert isinstance(value, TimerValue)
    assert scope.elapsed_ms == pytest.approx(250.0)
    assert value.duration.count == 1
    assert value.duration.max == pytest.approx(250.0)
    assert value.rate.count == 1


def test_timer_records_even_when_block_raises(store: MetricsStore, clock) -> None:
    with pytest.raises(RuntimeError):
        with store.time(SampleInstruments.TIMER_ONE):
            clock.advance(0.01)
            raise RuntimeError("fail")

    assert store.snapshot().get("timer_one").duration.count == 1


def test_kind_mismatch_raises(store: MetricsStore) -> None:
    with pytest.raises(InstrumentKindMismatchError) as exc:
        store.set_gauge(SampleInstruments.COUNTER_ONE, 1)

    assert exc.value.code == ErrorCode.INSTRUMENT_KIND_MISMATCH


def test_unregistered_instrument_raises(store: MetricsStore) -> None:
    with pytest.raises(UnknownInstrumentError):
        store.increment(counter("not_registered"))
    with pytest.raises(UnknownInstrumentError):
        store.time(timer("not_registered"))


def test_snapshot_is_isolated_from_later_updates(store: MetricsStore) -> None:
    store.increment(SampleInstruments.COUNTER_ONE)
    snapshot = store.snapshot()

    store.increment(SampleInstruments.COUNTER_ONE, 10)

    assert snapshot.get("counter_one").count == 1
    assert store.snapshot().get("counter_one").count == 11


def test_snapshot_to_dict_groups_by_kind() -> None:
    store = MetricsStore(
        InstrumentRegistry.with_samples(),
        context="billing",
        global_tags={"env": "test"},
    )
    store.set_gauge(SampleInstruments.GAUGE_ONE, 7)

    data = store.snapshot().to_dict()

    assert data["context"] == "billing"
    assert data["tags"] == {"env": "test"}
    assert set(data["metrics"]) == {kind.value for kind in InstrumentKind}
    gauge_entry = data["metrics"]["gauge"][0]
    assert gauge_entry == {
        "name": "gauge_one",
        "tags": {"prop1": "alpha", "prop2": "beta"},
        "value": 7,
    }


def test_concurrent_updates_are_not_lost(store: MetricsStore) -> None:
    def worker() -> None:
        for _ in range(1000):
            store.increment(SampleInstruments.COUNTER_ONE)
            store.update_histogram(SampleInstruments.HISTOGRAM_ONE, 1)
            store.snapshot()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = store.snapshot()
    assert snapshot.get("counter_one").count == 8000
    assert snapshot.get("histogram_one").summary.count == 8000
