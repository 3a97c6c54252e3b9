"""Loading, cooldown-gated saving and store interface for the monitor state."""

from __future__ import annotations

import logging
from typing import Protocol

from uptime_reconciler.models import MonitorState

logger = logging.getLogger(__name__)

# Slack for clock drift between scheduled runs.
COOLDOWN_DRIFT_S = 10


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None:  # pragma: no cover - interface
        ...

    async def put(self, key: str, value: str) -> None:  # pragma: no cover - interface
        ...


def should_persist(
    status_changed: bool, last_update: int, now: int, cooldown_minutes: int
) -> bool:
    """Write when something changed, otherwise at most once per cooldown."""
    if status_changed:
        return True
    return now - last_update >= cooldown_minutes * 60 - COOLDOWN_DRIFT_S


async def load_state(store: KeyValueStore, key: str) -> MonitorState:
    """Read the persisted state; anything unreadable starts a fresh one."""
    try:
        raw = await store.get(key)
    except Exception:
        logger.exception("Failed to read state, starting fresh")
        return MonitorState()

    if raw is None:
        logger.info("No stored state under %r, starting fresh", key)
        return MonitorState()

    try:
        return MonitorState.model_validate_json(raw)
    except ValueError:
        logger.exception("Stored state under %r is invalid, starting fresh", key)
        return MonitorState()


async def save_state(store: KeyValueStore, key: str, state: MonitorState, now: int) -> None:
    """Stamp ``state`` and overwrite it in the store. Write errors propagate."""
    state.last_update = now
    await store.put(key, state.model_dump_json(by_alias=True))
