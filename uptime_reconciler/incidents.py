"""Per-target incident state machine and incident retention."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from uptime_reconciler.models import Incident

SENTINEL_ERROR = "dummy"
INCIDENT_RETENTION_S = 90 * 24 * 60 * 60


class TransitionKind(str, Enum):
    """What a probe result did to a target's incident history."""

    NONE = "none"
    OPENED = "opened"
    CAUSE_CHANGED = "cause_changed"
    CLOSED = "closed"


@dataclass(frozen=True)
class Transition:
    kind: TransitionKind
    incident_open: bool
    incident_start: int | None = None

    @property
    def status_changed(self) -> bool:
        return self.kind is not TransitionKind.NONE


def sentinel_incident(at: int) -> Incident:
    """Bookkeeping incident marking that monitoring was running at ``at``."""
    return Incident(starts=[at], errors=[SENTINEL_ERROR], end=at)


def is_sentinel(incident: Incident) -> bool:
    return incident.errors[0] == SENTINEL_ERROR


def apply_probe_result(history: list[Incident], ok: bool, error: str, now: int) -> Transition:
    """Fold one probe outcome into ``history`` in place.

    An empty history is seeded with a sentinel dated ``now``. The returned
    transition names the incident start notifications should report.
    """
    if not history:
        history.append(sentinel_incident(now))

    last = history[-1]

    if ok:
        if last.is_open:
            last.end = now
            return Transition(TransitionKind.CLOSED, False, last.starts[0])
        return Transition(TransitionKind.NONE, False)

    if not last.is_open:
        history.append(Incident(starts=[now], errors=[error], end=None))
        return Transition(TransitionKind.OPENED, True, now)

    if last.errors[-1] != error:
        last.starts.append(now)
        last.errors.append(error)
        return Transition(TransitionKind.CAUSE_CHANGED, True, last.starts[0])

    return Transition(TransitionKind.NONE, True, last.starts[0])


def trim_incidents(history: list[Incident], now: int) -> None:
    """Expire closed incidents older than the retention window.

    The oldest entry is re-seeded with a sentinel dated exactly at the
    window edge whenever it is not already older than the window.
    """
    cutoff = now - INCIDENT_RETENTION_S

    while history and history[0].end is not None and history[0].end < cutoff:
        history.pop(0)

    if not history or (history[0].starts[0] > cutoff and not is_sentinel(history[0])):
        history.insert(0, sentinel_incident(cutoff))
