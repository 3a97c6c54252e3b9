"""Bounded-concurrency probe dispatch with optional remote delegation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

import httpx
from pydantic import ValidationError

from uptime_reconciler.models import MonitorTarget, ProbeStatus, RemoteCheckResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

Probe = Callable[[MonitorTarget], Awaitable[ProbeStatus]]

DEFAULT_CONCURRENCY = 6
REMOTE_CHECK_TIMEOUT_S = 30
REMOTE_CHECK_FAILED = "remote check failed"


async def run_with_limit(
    items: Iterable[T], handler: Callable[[T], Awaitable[None]], limit: int = DEFAULT_CONCURRENCY
) -> None:
    """Run ``handler`` for every item with at most ``limit`` handlers in flight."""
    if limit < 1:
        raise ValueError("limit must be at least 1")

    semaphore = asyncio.Semaphore(limit)

    async def handle_with_semaphore(item: T) -> None:
        async with semaphore:
            await handler(item)

    await asyncio.gather(*[handle_with_semaphore(item) for item in items])


async def check_remote(endpoint: str, target: MonitorTarget) -> tuple[str | None, ProbeStatus]:
    """Ask a remote check endpoint to probe ``target``.

    Any transport error, non-2xx or malformed response becomes a failing
    probe result; nothing is raised.
    """
    failed = ProbeStatus(ok=False, latency_ms=0, error=REMOTE_CHECK_FAILED)

    try:
        async with httpx.AsyncClient(timeout=REMOTE_CHECK_TIMEOUT_S) as client:
            response = await client.post(endpoint, json={"target": target.id})
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(
            "Remote check via %s failed: %s", endpoint, e, extra={"target_id": target.id}
        )
        return None, failed

    if not response.is_success:
        logger.warning(
            "Remote check via %s returned HTTP %s",
            endpoint,
            response.status_code,
            extra={"target_id": target.id},
        )
        return None, failed

    try:
        parsed = RemoteCheckResponse.model_validate_json(response.content)
    except ValidationError as e:
        logger.warning(
            "Malformed remote check response from %s: %s",
            endpoint,
            e,
            extra={"target_id": target.id},
        )
        return None, failed

    return parsed.location, parsed.status


async def check_target(
    target: MonitorTarget, probe: Probe, location: str
) -> tuple[str, ProbeStatus]:
    """Probe ``target`` locally or through its remote check endpoint.

    Returns:
        The location the check ran from and the probe result.
    """
    if target.remote_check_endpoint:
        remote_location, status = await check_remote(target.remote_check_endpoint, target)
        return remote_location or location, status

    return location, await probe(target)
