"""
Shared HTTP client helpers for exporters.

Provides consistent timeouts, retry behavior, and error mapping so exporters
raise stable AppError instances.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from metricsd.core import (
    ExporterAuthError,
    ExporterBadResponseError,
    ExporterError,
    ExporterUnavailableError,
    RateLimitError,
    get_logger,
    pass_id_ctx,
)

logger = get_logger(__name__)


def create_http_client(
    base_url: str,
    timeout_seconds: int,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient with consistent timeout settings.

    Args:
        base_url: Base URL for the export target.
        timeout_seconds: Total timeout for requests.
        headers: Default headers to include.
        transport: Optional transport (used by tests with MockTransport).
    """
    timeout = httpx.Timeout(
        timeout_seconds, connect=timeout_seconds, read=timeout_seconds, write=timeout_seconds
    )
    base = base_url.rstrip("/")
    return httpx.AsyncClient(
        base_url=base,
        timeout=timeout,
        headers=headers or {},
        transport=transport,
    )


async def request_with_retries(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int,
    **kwargs: Any,
) -> httpx.Response:
    """
    Execute an HTTP request, retrying only failures to connect.

    A connect failure means the request never left this host, so repeating it
    cannot deliver the payload twice. Read and write timeouts or a dropped
    connection may come after the collector accepted the POST; those map to
    ExporterUnavailableError on the first occurrence and the next pass sends
    a fresh snapshot. HTTP status codes are never retried.
    """
    headers = kwargs.pop("headers", {}) or {}
    pass_id = pass_id_ctx.get()
    if pass_id and "X-Export-Pass-ID" not in headers:
        headers["X-Export-Pass-ID"] = pass_id
    kwargs["headers"] = headers

    attempt = 0
    while True:
        try:
            return await client.request(method, url, **kwargs)
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            if attempt >= max_retries:
                raise ExporterUnavailableError(
                    "Exporter unavailable", details={"reason": str(exc)}
                ) from exc
            attempt += 1
            logger.debug(
                "Retrying export request",
                data={"url": url, "attempt": attempt, "reason": str(exc)},
            )
            await asyncio.sleep(min(0.1 * attempt, 1.0))
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise ExporterUnavailableError(
                "Exporter unavailable", details={"reason": str(exc)}
            ) from exc
        except httpx.HTTPError as exc:
            raise ExporterError("Export request failed", details={"reason": str(exc)}) from exc


def raise_for_status(response: httpx.Response) -> None:
    """
    Map HTTP status codes to stable AppError types.
    """
    status = response.status_code
    if status < 400:
        return

    details = _safe_error_details(response)

    if status in (401, 403):
        raise ExporterAuthError(details=details)
    if status == 429:
        raise RateLimitError("Rate limit exceeded", details=details)
    if status >= 500:
        raise ExporterUnavailableError("Exporter unavailable", details=details)
    raise ExporterError("Exporter error", details=details)


def parse_json(response: httpx.Response) -> Any:
    """
    Parse JSON with consistent error handling.
    """
    try:
        return response.json()
    except json.JSONDecodeError as exc:
        snippet = response.text[:500] if response.text else ""
        raise ExporterBadResponseError(
            "Exporter returned invalid response",
            details={"body": snippet},
        ) from exc


def _safe_error_details(response: httpx.Response) -> dict[str, Any]:
    """Return a small, non-sensitive error payload for debugging."""
    return {
        "status": response.status_code,
        "body": response.text[:300] if response.text else "",
        "url": str(response.request.url),
    }
