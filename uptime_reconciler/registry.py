"""Working target set assembly: static config plus discovered targets."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence

from uptime_reconciler.models import MonitorState, MonitorTarget

logger = logging.getLogger(__name__)

Discover = Callable[[], Awaitable[Sequence[MonitorTarget]]]


def merge_targets(
    static: Iterable[MonitorTarget], discovered: Iterable[MonitorTarget]
) -> list[MonitorTarget]:
    """Concatenate static and discovered targets, keeping the first target per id."""
    merged: list[MonitorTarget] = []
    seen: set[str] = set()
    for target in [*static, *discovered]:
        if target.id in seen:
            continue
        seen.add(target.id)
        merged.append(target)
    return merged


def prune_incidents(state: MonitorState, targets: Iterable[MonitorTarget]) -> list[str]:
    """Drop incident history of ids that are no longer monitored; return the dropped ids."""
    known = {target.id for target in targets}
    stale = [target_id for target_id in state.incidents if target_id not in known]
    for target_id in stale:
        del state.incidents[target_id]
    if stale:
        logger.info("Removed incident history for %d unknown targets", len(stale))
    return stale


async def assemble_targets(
    static: Sequence[MonitorTarget],
    discover: Discover | None,
    state: MonitorState,
) -> tuple[list[MonitorTarget], bool]:
    """Build the working target set.

    Discovery failures are logged and treated as zero discovered targets.
    Incident history is only garbage collected when discovery succeeded, so a
    transient directory outage never wipes history of valid targets.

    Returns:
        The merged targets and whether discovery succeeded this run.
    """
    discovered: Sequence[MonitorTarget] = []
    discovery_ok = False

    if discover is not None:
        try:
            discovered = await discover()
            discovery_ok = True
        except Exception:
            logger.exception("Skipping target auto-discovery")

    targets = merge_targets(static, discovered)

    if discovery_ok:
        prune_incidents(state, targets)

    return targets, discovery_ok
