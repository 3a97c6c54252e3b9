"""Test target registry assembly."""

from __future__ import annotations

import pytest

from uptime_reconciler.incidents import sentinel_incident
from uptime_reconciler.models import MonitorState, MonitorTarget
from uptime_reconciler.registry import assemble_targets, merge_targets


def _target(target_id: str, name: str | None = None) -> MonitorTarget:
    return MonitorTarget(id=target_id, name=name or target_id, target=f"https://{target_id}/")


def _state_with_history(*target_ids: str) -> MonitorState:
    return MonitorState(incidents={tid: [sentinel_incident(0)] for tid in target_ids})


def test_merge_targets_keeps_static_entry_on_duplicate_id() -> None:
    merged = merge_targets([_target("a", "A")], [_target("a", "A-discovered"), _target("b")])

    assert [(t.id, t.name) for t in merged] == [("a", "A"), ("b", "b")]


def test_merge_targets_dedupes_within_one_source() -> None:
    merged = merge_targets([], [_target("x", "first"), _target("x", "second")])

    assert [t.name for t in merged] == ["first"]


@pytest.mark.asyncio
async def test_assemble_targets_prunes_unknown_history_after_discovery() -> None:
    state = _state_with_history("a", "gone")

    async def discover() -> list[MonitorTarget]:
        return [_target("b")]

    targets, discovery_ok = await assemble_targets([_target("a")], discover, state)

    assert discovery_ok is True
    assert [t.id for t in targets] == ["a", "b"]
    assert set(state.incidents) == {"a"}


@pytest.mark.asyncio
async def test_assemble_targets_survives_discovery_failure() -> None:
    state = _state_with_history("a", "renamed")

    async def discover() -> list[MonitorTarget]:
        raise RuntimeError("directory unavailable")

    targets, discovery_ok = await assemble_targets([_target("a")], discover, state)

    assert discovery_ok is False
    assert [t.id for t in targets] == ["a"]
    assert set(state.incidents) == {"a", "renamed"}


@pytest.mark.asyncio
async def test_assemble_targets_without_discovery_keeps_history() -> None:
    state = _state_with_history("other")

    targets, discovery_ok = await assemble_targets([_target("a")], None, state)

    assert discovery_ok is False
    assert [t.id for t in targets] == ["a"]
    assert "other" in state.incidents
