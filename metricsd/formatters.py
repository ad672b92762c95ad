"""Output formatters used by the snapshot printer."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from metricsd.core import get_logger
from metricsd.metrics.snapshot import MetricsSnapshot

logger = get_logger(__name__)


class MetricsFormatter(ABC):
    """Renders a snapshot as text."""

    name: str
    media_type: str

    @abstractmethod
    def format(self, snapshot: MetricsSnapshot) -> str:
        ...


class TextFormatter(MetricsFormatter):
    """One indented block per instrument."""

    name = "text"
    media_type = "text/plain"

    def format(self, snapshot: MetricsSnapshot) -> str:
        lines = [f"# CONTEXT: {snapshot.context}", f"# TIMESTAMP: {snapshot.timestamp.isoformat()}"]
        if snapshot.global_tags:
            lines.append(f"# TAGS: {_format_tags(snapshot.global_tags)}")
        for value in snapshot.values:
            descriptor = value.descriptor
            header = f"[{descriptor.kind.value}] {descriptor.name}"
            if descriptor.tags:
                header += f" {{{_format_tags(descriptor.tags)}}}"
            if descriptor.unit:
                header += f" ({descriptor.unit})"
            lines.append(header)
            for key, field_value in _flatten(value.to_dict()):
                lines.append(f"    {key} = {_format_number(field_value)}")
        return "\n".join(lines)


class JsonFormatter(MetricsFormatter):
    name = "json"
    media_type = "application/json"

    def __init__(self, indent: int | None = 2):
        self.indent = indent

    def format(self, snapshot: MetricsSnapshot) -> str:
        return json.dumps(snapshot.to_dict(), indent=self.indent, ensure_ascii=False)


_FORMATTERS: dict[str, type[MetricsFormatter]] = {
    TextFormatter.name: TextFormatter,
    JsonFormatter.name: JsonFormatter,
}


def build_formatters(formatter_ids: Iterable[str]) -> list[MetricsFormatter]:
    """Instantiate formatters in configured order; unknown ids are skipped."""
    formatters: list[MetricsFormatter] = []
    for formatter_id in formatter_ids:
        formatter_cls = _FORMATTERS.get(formatter_id)
        if formatter_cls is None:
            logger.warning("Unknown formatter id in configuration", data={"id": formatter_id})
            continue
        formatters.append(formatter_cls())
    return formatters


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    flat: list[tuple[str, Any]] = []
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.extend(_flatten(value, f"{full_key}."))
        else:
            flat.append((full_key, value))
    return flat


def _format_tags(tags: Iterable[tuple[str, str]]) -> str:
    return ", ".join(f"{key}={value}" for key, value in tags)


def _format_number(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)
