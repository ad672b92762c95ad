"""Tests for structured log formatting."""

from __future__ import annotations

import json
import logging

from metricsd.core import get_logger, pass_id_ctx, task_name_ctx
from metricsd.core.logging import ConsoleFormatter, StructuredFormatter


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("metricsd.test", logging.WARNING, __file__, 1, "Report failed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_includes_context_and_data() -> None:
    task_token = task_name_ctx.set("reporter")
    pass_token = pass_id_ctx.set("deadbeef")
    try:
        line = StructuredFormatter().format(make_record(data={"exporter": "http"}))
    finally:
        pass_id_ctx.reset(pass_token)
        task_name_ctx.reset(task_token)

    payload = json.loads(line)
    assert payload["level"] == "WARNING"
    assert payload["message"] == "Report failed"
    assert payload["task"] == "reporter"
    assert payload["pass_id"] == "deadbeef"
    assert payload["data"] == {"exporter": "http"}


def test_console_formatter_uses_placeholders_outside_tasks() -> None:
    line = ConsoleFormatter(use_color=False).format(make_record())

    assert "| WARNING  | - | - | metricsd.test | Report failed" in line


def test_context_logger_moves_data_into_extra(caplog) -> None:
    caplog.set_level(logging.INFO, logger="metricsd.test")

    get_logger("metricsd.test").info("Daemon started", data={"exporters": ["log"]})

    assert caplog.records[-1].data == {"exporters": ["log"]}
