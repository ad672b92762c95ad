"""Generic JSON-over-HTTP exporter."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

import httpx

from metricsd.core import get_logger
from metricsd.exporters.base import ExporterType, MetricsExporter
from metricsd.exporters.http_client import (
    create_http_client,
    raise_for_status,
    request_with_retries,
)
from metricsd.metrics.snapshot import MetricsSnapshot

logger = get_logger(__name__)


class HttpJsonExporter(MetricsExporter):
    """POST the snapshot as JSON to a collector endpoint."""

    exporter_type = ExporterType.HTTP

    def __init__(
        self,
        url: str,
        timeout: int,
        max_retries: int,
        headers: dict[str, str] | None = None,
        exporter_type: ExporterType | None = None,
        display_name: str = "HTTP JSON",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if exporter_type is not None:
            self.exporter_type = exporter_type
        self.display_name = display_name
        self.max_retries = max_retries
        parts = urlsplit(url)
        base_url = f"{parts.scheme}://{parts.netloc}"
        self.path = parts.path or "/"
        if parts.query:
            self.path = f"{self.path}?{parts.query}"
        self.client = create_http_client(
            base_url=base_url,
            timeout_seconds=timeout,
            headers={"Content-Type": "application/json", **(headers or {})},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def build_payload(self, snapshot: MetricsSnapshot) -> Any:
        """Request body for a snapshot, or None to skip the request."""
        return snapshot.to_dict()

    async def export(self, snapshot: MetricsSnapshot) -> None:
        payload = self.build_payload(snapshot)
        if payload is None:
            logger.debug("Nothing to export", data={"exporter": self.name})
            return
        response = await request_with_retries(
            self.client,
            "POST",
            self.path,
            json=payload,
            max_retries=self.max_retries,
        )
        raise_for_status(response)
        self.check_response(response)
        logger.debug(
            "Snapshot exported",
            data={"exporter": self.name, "status": response.status_code},
        )

    def check_response(self, response: httpx.Response) -> None:
        """Hook for targets that report partial failures in a 2xx body."""
        return None
