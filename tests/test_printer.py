"""Tests for the snapshot printer and output formatters."""

from __future__ import annotations

import io
import json

from metricsd.formatters import JsonFormatter, TextFormatter, build_formatters
from metricsd.metrics import InstrumentRegistry, MetricsStore, SampleInstruments
from metricsd.services import SnapshotPrinter


def populated_store() -> MetricsStore:
    store = MetricsStore(
        InstrumentRegistry.with_samples(),
        context="sample",
        global_tags={"env": "test"},
    )
    store.increment(SampleInstruments.COUNTER_ONE, 3)
    store.set_gauge(SampleInstruments.GAUGE_ONE, 12.5)
    store.update_histogram(SampleInstruments.HISTOGRAM_ONE, 40)
    return store


def test_text_formatter_renders_each_instrument() -> None:
    text = TextFormatter().format(populated_store().snapshot())

    assert text.startswith("# CONTEXT: sample\n# TIMESTAMP: ")
    assert "# TAGS: env=test" in text
    assert "[counter] counter_one (calls)\n    count = 3" in text
    assert "[gauge] gauge_one {prop1=alpha, prop2=beta}\n    value = 12.50" in text
    assert "    mean = 40.00" in text
    # Empty timer prints placeholders.
    assert "    duration.min = -" in text


def test_json_formatter_matches_snapshot_dict() -> None:
    snapshot = populated_store().snapshot()

    data = json.loads(JsonFormatter().format(snapshot))

    assert data == json.loads(json.dumps(snapshot.to_dict()))
    assert data["metrics"]["counter"][0]["count"] == 3


def test_build_formatters_keeps_order_and_skips_unknown() -> None:
    formatters = build_formatters(["json", "yaml", "text"])

    assert [f.name for f in formatters] == ["json", "text"]


def test_printer_writes_one_block_per_formatter_in_order() -> None:
    stream = io.StringIO()
    store = populated_store()
    printer = SnapshotPrinter(store, [TextFormatter(), JsonFormatter()], stream)

    blocks = printer.print_snapshot()

    output = stream.getvalue()
    assert len(blocks) == 2
    assert output.index(blocks[0]) < output.index(blocks[1])
    assert json.loads(blocks[1])["context"] == "sample"


def test_printer_does_not_mutate_store() -> None:
    store = populated_store()
    printer = SnapshotPrinter(store, [JsonFormatter()], io.StringIO())
    before = store.snapshot().to_dict()

    printer.print_snapshot()
    printer.print_snapshot()

    after = store.snapshot().to_dict()
    before.pop("timestamp")
    after.pop("timestamp")
    assert before == after


def test_printer_without_formatters_writes_nothing_but_newline() -> None:
    stream = io.StringIO()

    assert SnapshotPrinter(populated_store(), [], stream).print_snapshot() == []
    assert stream.getvalue() == "\n"
