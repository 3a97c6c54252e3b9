"""Notification gating, message formatting, delivery and status hooks."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

import httpx

from uptime_reconciler.models import MonitorTarget

logger = logging.getLogger(__name__)

# Slack absorbing scheduler jitter around grace thresholds.
DRIFT_S = 30


class NotificationError(RuntimeError):
    """Raised when a notification could not be delivered."""


def should_notify(
    grace_period_minutes: int | None,
    is_up: bool,
    status_changed: bool,
    incident_start: int,
    now: int,
) -> bool:
    """Decide whether a status notification fires on this run.

    Without a grace period every status change notifies. With one, a
    recovery is only reported when the matching down notification would
    already have fired, a fresh down change notifies once it is past the
    grace window, and a continuing incident notifies once as its age
    crosses the threshold.
    """
    if grace_period_minutes is None:
        return status_changed

    elapsed = now - incident_start
    reported_threshold = (grace_period_minutes + 1) * 60 - DRIFT_S

    if is_up:
        return status_changed and elapsed >= reported_threshold

    if status_changed and elapsed >= reported_threshold:
        return True

    grace_s = grace_period_minutes * 60
    return grace_s - DRIFT_S <= elapsed < grace_s + DRIFT_S


def _format_time(timestamp: int, tz: ZoneInfo) -> str:
    moment = datetime.fromtimestamp(timestamp, tz)
    return f"{moment.month}/{moment.day}, {moment:%H:%M}"


def format_status_change_notification(
    target: MonitorTarget,
    is_up: bool,
    incident_start: int,
    now: int,
    reason: str,
    timezone: str = "Etc/GMT",
) -> tuple[str, str]:
    """Return ``(title, body)`` describing a status change of ``target``."""
    tz = ZoneInfo(timezone)
    downtime_minutes = int((now - incident_start) / 60 + 0.5)
    issue = reason or "unspecified"

    if is_up:
        return (
            f"✅ {target.name} is up!",
            f"The service is up again after being down for {downtime_minutes} minutes.",
        )
    if now == incident_start:
        return (
            f"🔴 {target.name} is currently down.",
            f"Service is unavailable at {_format_time(now, tz)}. Issue: {issue}",
        )
    return (
        f"🔴 {target.name} is still down.",
        f"Service is unavailable since {_format_time(incident_start, tz)} "
        f"({downtime_minutes} minutes). Issue: {issue}",
    )


class NotificationSender(Protocol):
    async def send(self, title: str, body: str) -> None:  # pragma: no cover - interface
        ...


class AppriseNotificationSender:
    """Deliver notifications through an Apprise API server."""

    def __init__(self, api_server: str, recipient_url: str, timeout_s: float = 10) -> None:
        self.api_server = api_server
        self.recipient_url = recipient_url
        self.timeout_s = timeout_s

    async def send(self, title: str, body: str) -> None:
        payload = {
            "urls": self.recipient_url,
            "title": title,
            "body": body,
            "type": "warning",
            "format": "text",
        }
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.post(self.api_server, json=payload)

        if not response.is_success:
            raise NotificationError(
                f"Apprise server returned HTTP {response.status_code}: {response.text[:200]}"
            )
        logger.info("Notification sent: %s", title)


class MonitorHooks:
    """Callbacks invoked by the reconciler; override what you need.

    ``on_status_change`` fires on every transition regardless of grace
    period. ``on_incident_ongoing`` fires on every run while a target has
    an open incident.
    """

    async def on_status_change(
        self,
        target: MonitorTarget,
        is_up: bool,
        incident_start: int,
        now: int,
        reason: str,
    ) -> None:
        return None

    async def on_incident_ongoing(
        self,
        target: MonitorTarget,
        incident_start: int,
        now: int,
        reason: str,
    ) -> None:
        return None


class LoggingMonitorHooks(MonitorHooks):
    async def on_status_change(
        self,
        target: MonitorTarget,
        is_up: bool,
        incident_start: int,
        now: int,
        reason: str,
    ) -> None:
        logger.info(
            "%s is now %s (%s)",
            target.name,
            "UP" if is_up else "DOWN",
            reason,
            extra={"target_id": target.id},
        )

    async def on_incident_ongoing(
        self,
        target: MonitorTarget,
        incident_start: int,
        now: int,
        reason: str,
    ) -> None:
        logger.debug(
            "%s down for %ds: %s",
            target.name,
            now - incident_start,
            reason,
            extra={"target_id": target.id},
        )
