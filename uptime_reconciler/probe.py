"""HTTP probe primitive and edge location detection."""

from __future__ import annotations

import json
import logging
import time

import httpx

from uptime_reconciler.models import MonitorTarget, ProbeStatus

logger = logging.getLogger(__name__)

TRACE_URL = "https://cloudflare.com/cdn-cgi/trace"
UNKNOWN_LOCATION = "ERROR"


def _expected_codes_error(target: MonitorTarget, status_code: int) -> str | None:
    if target.expected_codes:
        if status_code not in target.expected_codes:
            codes = json.dumps(sorted(target.expected_codes))
            return f"Expected codes: {codes}, Got: {status_code}"
        return None
    if not 200 <= status_code <= 299:
        return f"Expected codes: 2xx, Got: {status_code}"
    return None


async def probe_target(target: MonitorTarget) -> ProbeStatus:
    """Issue one HTTP request against ``target`` and judge the response."""
    start = time.monotonic()
    timeout_s = target.timeout_ms / 1000

    try:
        async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as client:
            response = await client.request(
                target.method,
                target.target,
                headers=target.headers,
                content=target.body,
            )

        latency_ms = int((time.monotonic() - start) * 1000)

        error = _expected_codes_error(target, response.status_code)
        if error is None and target.response_keyword:
            if target.response_keyword not in response.text:
                error = "HTTP response doesn't contain the configured keyword"

        if error is not None:
            return ProbeStatus(ok=False, latency_ms=latency_ms, error=error)
        return ProbeStatus(ok=True, latency_ms=latency_ms)

    except httpx.TimeoutException:
        error = f"Timeout after {target.timeout_ms}ms"
    except httpx.HTTPError as e:
        error = f"{type(e).__name__}: {e}"[:500]
    except Exception as e:
        logger.exception("Unexpected probe failure", extra={"target_id": target.id})
        error = f"{type(e).__name__}: {e}"[:500]

    latency_ms = int((time.monotonic() - start) * 1000)
    return ProbeStatus(ok=False, latency_ms=latency_ms, error=error)


async def detect_location(configured: str | None = None) -> str:
    """Return the configured location, else the edge colo reported by the trace endpoint."""
    if configured:
        return configured

    try:
        async with httpx.AsyncClient(timeout=5) as client:
            response = await client.get(TRACE_URL)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Could not detect location: %s", e)
        return UNKNOWN_LOCATION

    for line in response.text.splitlines():
        key, _, value = line.partition("=")
        if key == "colo" and value:
            return value
    return UNKNOWN_LOCATION
