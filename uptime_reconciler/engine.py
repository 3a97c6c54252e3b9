"""Reconciliation run: probe every target, update history, notify, persist."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from uptime_reconciler.config import Settings, WorkerConfig, load_worker_config
from uptime_reconciler.discovery import CloudflareDiscovery
from uptime_reconciler.dispatcher import Probe, check_target, run_with_limit
from uptime_reconciler.incidents import Transition, apply_probe_result, trim_incidents
from uptime_reconciler.latency import record_latency
from uptime_reconciler.models import LatencyHistory, MonitorState, MonitorTarget, ProbeStatus
from uptime_reconciler.notifications import (
    AppriseNotificationSender,
    LoggingMonitorHooks,
    MonitorHooks,
    NotificationSender,
    format_status_change_notification,
    should_notify,
)
from uptime_reconciler.persistence import KeyValueStore, load_state, save_state, should_persist
from uptime_reconciler.probe import UNKNOWN_LOCATION, detect_location, probe_target
from uptime_reconciler.registry import Discover, assemble_targets

logger = logging.getLogger(__name__)


def now_seconds() -> int:
    return round(time.time())


@dataclass(frozen=True)
class ReconcileContext:
    """Everything a reconciliation run needs from its surroundings."""

    store: KeyValueStore
    config: WorkerConfig


@dataclass(frozen=True)
class RunSummary:
    targets: int
    up: int
    down: int
    status_changed: bool
    persisted: bool
    discovery_ok: bool


class Reconciler:
    """Runs one reconciliation pass per call to :meth:`run`.

    The shared :class:`MonitorState` is only mutated in synchronous code
    between awaits, so concurrent probes need no locking.
    """

    def __init__(
        self,
        context: ReconcileContext,
        *,
        probe: Probe = probe_target,
        discover: Discover | None = None,
        notifier: NotificationSender | None = None,
        hooks: MonitorHooks | None = None,
        location: str = UNKNOWN_LOCATION,
        clock: Callable[[], int] = now_seconds,
    ) -> None:
        self.context = context
        self.probe = probe
        self.discover = discover
        self.notifier = notifier
        self.hooks = hooks or MonitorHooks()
        self.location = location
        self.clock = clock

    @property
    def config(self) -> WorkerConfig:
        return self.context.config

    async def run(self) -> RunSummary:
        config = self.config
        run_started = self.clock()

        state = await load_state(self.context.store, config.state_key)
        state.overall_up = 0
        state.overall_down = 0

        targets, discovery_ok = await assemble_targets(config.monitors, self.discover, state)
        logger.info("Checking %d targets from %s", len(targets), self.location)

        changed: set[str] = set()

        async def process(target: MonitorTarget) -> None:
            if await self._process_target(state, target):
                changed.add(target.id)

        await run_with_limit(targets, process, config.probe_concurrency)

        status_changed = bool(changed)
        persisted = should_persist(
            status_changed, state.last_update, run_started, config.kv_write_cooldown_minutes
        )
        logger.info(
            "status_changed=%s last_update=%s now=%s",
            status_changed,
            state.last_update,
            run_started,
        )
        if persisted:
            await save_state(self.context.store, config.state_key, state, run_started)
            logger.info("State updated")
        else:
            logger.info("Skipping state update due to cooldown period")

        return RunSummary(
            targets=len(targets),
            up=state.overall_up,
            down=state.overall_down,
            status_changed=status_changed,
            persisted=persisted,
            discovery_ok=discovery_ok,
        )

    async def _process_target(self, state: MonitorState, target: MonitorTarget) -> bool:
        """Probe one target and fold the result into ``state``; return whether its status changed."""
        logger.debug("Checking %s", target.name, extra={"target_id": target.id})
        location, status = await check_target(target, self.probe, self.location)
        now = self.clock()

        if status.ok:
            state.overall_up += 1
        else:
            state.overall_down += 1

        history = state.incidents.setdefault(target.id, [])
        transition = apply_probe_result(history, status.ok, status.error, now)

        latency = state.latency.setdefault(target.id, LatencyHistory())
        record_latency(latency, location, status.latency_ms, now)
        trim_incidents(history, now)

        await self._notify(target, status, transition, now)
        return transition.status_changed

    async def _notify(
        self, target: MonitorTarget, status: ProbeStatus, transition: Transition, now: int
    ) -> None:
        if transition.incident_start is None:
            return

        start = transition.incident_start
        reason = "OK" if status.ok else status.error

        if should_notify(
            self.config.grace_period_minutes,
            status.ok,
            transition.status_changed,
            start,
            now,
        ):
            await self._send_notification(target, status.ok, start, now, reason)
        else:
            logger.debug(
                "Grace period (%sm) not met for %s (down for %ds, changed %s)",
                self.config.grace_period_minutes,
                target.name,
                now - start,
                transition.status_changed,
                extra={"target_id": target.id},
            )

        if transition.status_changed:
            try:
                await self.hooks.on_status_change(target, status.ok, start, now, reason)
            except Exception:
                logger.exception("Status change hook failed", extra={"target_id": target.id})

        if transition.incident_open:
            try:
                await self.hooks.on_incident_ongoing(target, start, now, reason)
            except Exception:
                logger.exception("Ongoing incident hook failed", extra={"target_id": target.id})

    async def _send_notification(
        self, target: MonitorTarget, is_up: bool, start: int, now: int, reason: str
    ) -> None:
        notification = self.config.notification
        if self.notifier is None or notification is None:
            logger.info(
                "Notifications not configured, skipping notification for %s",
                target.name,
                extra={"target_id": target.id},
            )
            return

        title, body = format_status_change_notification(
            target, is_up, start, now, reason, notification.timezone
        )
        try:
            await self.notifier.send(title, body)
        except Exception:
            logger.exception("Failed to send notification", extra={"target_id": target.id})


async def worker_loop(
    make_reconciler: Callable[[], Awaitable[Reconciler]], interval_s: int = 60
) -> None:
    """Run a reconciliation every ``interval_s`` seconds until cancelled."""
    while True:
        try:
            reconciler = await make_reconciler()
            await reconciler.run()
        except Exception:
            logger.exception("Reconciliation run failed")
        await asyncio.sleep(interval_s)


async def create_reconciler(
    settings: Settings, store: KeyValueStore, hooks: MonitorHooks | None = None
) -> Reconciler:
    """Wire a reconciler from settings: config, discovery, notifications, location."""
    config = load_worker_config(settings)

    discover = None
    if settings.cloudflare_zone_id and settings.cloudflare_api_token:
        discover = CloudflareDiscovery(settings.cloudflare_zone_id, settings.cloudflare_api_token)

    notifier = None
    if config.notification is not None:
        notifier = AppriseNotificationSender(
            config.notification.apprise_api_server, config.notification.recipient_url
        )

    location = await detect_location(settings.location)

    return Reconciler(
        ReconcileContext(store=store, config=config),
        discover=discover,
        notifier=notifier,
        hooks=hooks or LoggingMonitorHooks(),
        location=location,
    )
