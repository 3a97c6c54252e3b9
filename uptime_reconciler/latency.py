"""Dual-resolution latency history."""

from __future__ import annotations

from uptime_reconciler.models import LatencyHistory, LatencySample

RECENT_RETENTION_S = 12 * 60 * 60
ALL_RETENTION_S = 90 * 24 * 60 * 60
DOWNSAMPLE_INTERVAL_S = 60 * 60


def record_latency(history: LatencyHistory, location: str, latency_ms: int, now: int) -> None:
    """Append a sample to ``recent`` and, at most hourly, to ``all``; then expire both."""
    sample = LatencySample(location=location, latency_ms=latency_ms, time=now)

    history.recent.append(sample)
    if not history.all or now - history.all[-1].time > DOWNSAMPLE_INTERVAL_S:
        history.all.append(sample)

    recent_cutoff = now - RECENT_RETENTION_S
    while history.recent and history.recent[0].time < recent_cutoff:
        history.recent.pop(0)

    all_cutoff = now - ALL_RETENTION_S
    while history.all and history.all[0].time < all_cutoff:
        history.all.pop(0)
