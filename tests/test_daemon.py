"""Tests for the control surface: lifecycle, operator commands and shutdown."""

from __future__ import annotations

import asyncio
import dataclasses
import io
import json
import logging
import os

import pytest
from conftest import MockExporter, ScriptedKeys, StubRandom

from metricsd import main as main_module
from metricsd.console import ESC_KEY, OperatorCommand, TerminalKeyReader, parse_key
from metricsd.context import build_context
from metricsd.core import ExporterAuthError
from metricsd.exporters import ExporterType
from metricsd.main import DaemonState, MetricsDaemon, RunSummary, format_elapsed


def make_daemon(isolated_settings, exporters=None, **overrides) -> tuple[MetricsDaemon, io.StringIO]:
    stream = io.StringIO()
    values = {
        "record_interval_seconds": 0.05,
        "report_interval_seconds": 10.0,
        "shutdown_timeout_seconds": 1.0,
        "formatters_enabled": "text",
    }
    values.update(overrides)
    context = build_context(isolated_settings(**values), stream=stream)
    if exporters is not None:
        context = dataclasses.replace(context, exporters=exporters)
    return MetricsDaemon(context, rng=StubRandom()), stream


def test_parse_key_maps_operator_keys() -> None:
    assert parse_key("p") is OperatorCommand.PRINT
    assert parse_key("P") is OperatorCommand.PRINT
    assert parse_key("R") is OperatorCommand.REPORT
    assert parse_key(ESC_KEY) is OperatorCommand.EXIT
    assert parse_key("x") is None
    assert parse_key("\n") is None


def test_summary_line_format() -> None:
    summary = RunSummary(elapsed_seconds=3725.5, record_count=12, flush_count=3)

    assert format_elapsed(3725.5) == "01:02:05.500"
    assert summary.format() == (
        "In 01:02:05.500 the metrics have been recorded 12 times and flushed 3 times."
    )


@pytest.mark.asyncio
async def test_lifecycle_states(isolated_settings) -> None:
    daemon, _ = make_daemon(isolated_settings)
    assert daemon.state is DaemonState.IDLE

    daemon.start()
    assert daemon.state is DaemonState.RUNNING
    with pytest.raises(RuntimeError):
        daemon.start()

    first = await daemon.shutdown()
    second = await daemon.shutdown()

    assert daemon.state is DaemonState.TERMINATED
    assert first is second
    assert daemon.context.cancellation.cancelled


@pytest.mark.asyncio
async def test_concurrent_shutdown_calls_share_one_summary(isolated_settings) -> None:
    daemon, _ = make_daemon(isolated_settings)
    daemon.start()

    first, second = await asyncio.gather(daemon.shutdown(), daemon.shutdown())

    assert first is second


@pytest.mark.asyncio
async def test_scaled_run_records_at_interval_and_never_flushes(isolated_settings) -> None:
    exporter = MockExporter()
    daemon, stream = make_daemon(isolated_settings, exporters=[exporter])
    keys = ScriptedKeys()

    task = asyncio.create_task(daemon.run(keys))
    await asyncio.sleep(0.33)
    keys.press(ESC_KEY)
    summary = await asyncio.wait_for(task, timeout=2.0)

    # Rounds at ~0, 50, ... 300 ms; the report interval never elapses.
    assert 5 <= summary.record_count <= 8
    assert summary.flush_count == 0
    assert exporter.snapshots == []
    output = stream.getvalue()
    assert output.count("the metrics have been recorded") == 1
    assert summary.format() in output
    assert "." * summary.record_count in output


@pytest.mark.asyncio
async def test_shutdown_is_bounded_when_export_hangs(isolated_settings, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="metricsd.main")
    hanging = MockExporter(delay=30.0)
    daemon, _ = make_daemon(
        isolated_settings,
        exporters=[hanging],
        report_interval_seconds=0.02,
        shutdown_timeout_seconds=0.1,
    )
    loop = asyncio.get_running_loop()

    daemon.start()
    await asyncio.sleep(0.08)
    started = loop.time()
    summary = await daemon.shutdown()

    assert loop.time() - started < 1.0
    assert daemon.state is DaemonState.TERMINATED
    assert summary.flush_count == 0
    timeouts = [r for r in caplog.records if "did not stop" in r.getMessage()]
    assert timeouts and timeouts[0].data["tasks"] == ["reporter"]


@pytest.mark.asyncio
async def test_unknown_keys_are_ignored_and_print_shows_snapshot(isolated_settings) -> None:
    daemon, stream = make_daemon(isolated_settings, record_interval_seconds=10.0)
    keys = ScriptedKeys()
    for key in ("x", "7", "p", ESC_KEY):
        keys.press(key)

    await asyncio.wait_for(daemon.run(keys), timeout=2.0)

    output = stream.getvalue()
    assert "# CONTEXT: application" in output
    assert "[counter] counter_one" in output
    assert output.count("the metrics have been recorded") == 1
    assert daemon.state is DaemonState.TERMINATED


@pytest.mark.asyncio
async def test_report_key_runs_on_demand_pass_without_counting_flush(isolated_settings) -> None:
    exporter = MockExporter()
    daemon, stream = make_daemon(isolated_settings, exporters=[exporter])
    keys = ScriptedKeys()
    keys.press("r")
    keys.press(ESC_KEY)

    summary = await asyncio.wait_for(daemon.run(keys), timeout=2.0)

    assert len(exporter.snapshots) == 1
    assert summary.flush_count == 0
    assert "Metrics reported." in stream.getvalue()


@pytest.mark.asyncio
async def test_report_failure_is_printed_not_raised(isolated_settings, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="metricsd.main")
    broken = MockExporter(ExporterType.APP_INSIGHTS, error=ExporterAuthError())
    daemon, stream = make_daemon(isolated_settings, exporters=[broken])
    keys = ScriptedKeys()
    keys.press("R")
    keys.press(ESC_KEY)

    await asyncio.wait_for(daemon.run(keys), timeout=2.0)

    output = stream.getvalue()
    assert "Report failed: [E3006] Export pass failed" in output
    assert "  app_insights: [E3003] Exporter authentication failed" in output
    assert any(r.getMessage() == "On-demand report failed" for r in caplog.records)


@pytest.mark.asyncio
async def test_end_of_input_exits(isolated_settings) -> None:
    daemon, stream = make_daemon(isolated_settings)
    keys = ScriptedKeys()
    keys.press(None)

    await asyncio.wait_for(daemon.run(keys), timeout=2.0)

    assert daemon.state is DaemonState.TERMINATED
    assert stream.getvalue().count("the metrics have been recorded") == 1


@pytest.mark.asyncio
async def test_commands_after_shutdown_are_ignored(isolated_settings) -> None:
    exporter = MockExporter()
    daemon, _ = make_daemon(isolated_settings, exporters=[exporter])
    daemon.start()
    await daemon.shutdown()

    await daemon.handle(OperatorCommand.REPORT)

    assert exporter.snapshots == []


def test_main_exits_with_status_1_on_invalid_key(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("INSTRUMENTATION_KEY", raising=False)
    monkeypatch.setattr(main_module, "setup_logging", lambda **kwargs: None)
    config = tmp_path / "appsettings.json"
    config.write_text(json.dumps({"exporters_enabled": "app_insights", "instrumentation_key": ""}))

    status = main_module.main(["--config", str(config)])

    assert status == 1
    assert "E1002" in capsys.readouterr().err


def test_main_exits_with_status_1_on_missing_config(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)

    status = main_module.main(["--config", str(tmp_path / "nope.json")])

    assert status == 1
    assert "Configuration file not found" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_arrow_key_does_not_exit(isolated_settings) -> None:
    daemon, _ = make_daemon(isolated_settings)
    read_fd, write_fd = os.pipe()
    stream = os.fdopen(read_fd, "r")
    keys = TerminalKeyReader(stream)
    try:
        with keys:
            task = asyncio.create_task(daemon.run(keys))
            os.write(write_fd, b"\x1b[A")
            await asyncio.sleep(0.2)
            assert daemon.state is DaemonState.RUNNING

            os.write(write_fd, ESC_KEY.encode())
            await asyncio.wait_for(task, timeout=2.0)
    finally:
        os.close(write_fd)
        if keys._thread is not None:
            keys._thread.join(timeout=1.0)
        stream.close()

    assert daemon.state is DaemonState.TERMINATED
