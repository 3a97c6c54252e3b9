"""Test bounded dispatch and remote delegation."""

from __future__ import annotations

import asyncio
import random
from types import TracebackType

import httpx
import pytest

from uptime_reconciler.dispatcher import (
    REMOTE_CHECK_FAILED,
    check_remote,
    check_target,
    run_with_limit,
)
from uptime_reconciler.models import MonitorTarget, ProbeStatus


class _DummyClient:
    def __init__(self, response: httpx.Response | None = None, exc: Exception | None = None) -> None:
        self._response = response
        self._exc = exc
        self.posted: list[tuple[str, object]] = []

    async def __aenter__(self) -> _DummyClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        return False

    async def post(self, url: str, json: object = None) -> httpx.Response:
        self.posted.append((url, json))
        if self._exc is not None:
            raise self._exc
        assert self._response is not None
        return self._response


def _patch_client(monkeypatch: pytest.MonkeyPatch, client: _DummyClient) -> None:
    monkeypatch.setattr("uptime_reconciler.dispatcher.httpx.AsyncClient", lambda **_kwargs: client)


REMOTE = MonitorTarget(
    id="api",
    name="API",
    target="https://api.example.com",
    remote_check_endpoint="https://remote.example.com/",
)


@pytest.mark.asyncio
async def test_run_with_limit_never_exceeds_bound() -> None:
    in_flight = 0
    peak = 0
    done: list[int] = []

    async def handler(item: int) -> None:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(random.uniform(0, 0.01))
        in_flight -= 1
        done.append(item)

    await run_with_limit(range(20), handler, 6)

    assert sorted(done) == list(range(20))
    assert 1 <= peak <= 6


@pytest.mark.asyncio
async def test_run_with_limit_rejects_zero_limit() -> None:
    async def handler(_item: int) -> None:
        return None

    with pytest.raises(ValueError):
        await run_with_limit([1], handler, 0)


@pytest.mark.asyncio
async def test_check_remote_parses_response(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _DummyClient(
        httpx.Response(
            200,
            json={"location": "SIN", "status": {"latencyMs": 42, "ok": False, "error": "HTTP 502"}},
        )
    )
    _patch_client(monkeypatch, client)

    location, status = await check_remote("https://remote.example.com/", REMOTE)

    assert client.posted == [("https://remote.example.com/", {"target": "api"})]
    assert location == "SIN"
    assert status == ProbeStatus(ok=False, latency_ms=42, error="HTTP 502")


@pytest.mark.asyncio
async def test_check_remote_rounds_fractional_latency(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _DummyClient(
        httpx.Response(
            200,
            json={"location": "SIN", "status": {"latencyMs": 41.7, "ok": True, "error": ""}},
        )
    )
    _patch_client(monkeypatch, client)

    location, status = await check_remote("https://remote.example.com/", REMOTE)

    assert location == "SIN"
    assert status == ProbeStatus(ok=True, latency_ms=42, error="")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "client",
    [
        _DummyClient(exc=httpx.ConnectError("refused")),
        _DummyClient(exc=httpx.InvalidURL("Invalid port: ':1'")),
        _DummyClient(httpx.Response(500, text="boom")),
        _DummyClient(httpx.Response(200, text="not json")),
        _DummyClient(httpx.Response(200, json={"location": "SIN"})),
    ],
)
async def test_check_remote_failures_become_down_results(
    monkeypatch: pytest.MonkeyPatch, client: _DummyClient
) -> None:
    _patch_client(monkeypatch, client)

    location, status = await check_remote("https://remote.example.com/", REMOTE)

    assert location is None
    assert status.ok is False
    assert status.error == REMOTE_CHECK_FAILED


@pytest.mark.asyncio
async def test_check_target_probes_locally_without_endpoint() -> None:
    local = MonitorTarget(id="web", name="Web", target="https://example.com")

    async def probe(target: MonitorTarget) -> ProbeStatus:
        return ProbeStatus(ok=True, latency_ms=7)

    location, status = await check_target(local, probe, "AMS")

    assert location == "AMS"
    assert status.ok is True


@pytest.mark.asyncio
async def test_check_target_keeps_local_location_when_delegation_fails(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _patch_client(monkeypatch, _DummyClient(exc=httpx.ReadTimeout("slow")))

    async def probe(target: MonitorTarget) -> ProbeStatus:
        raise AssertionError("delegated targets must not be probed locally")

    location, status = await check_target(REMOTE, probe, "AMS")

    assert location == "AMS"
    assert status.error == REMOTE_CHECK_FAILED


@pytest.mark.asyncio
async def test_check_target_with_unparseable_endpoint_is_down() -> None:
    broken = REMOTE.model_copy(update={"remote_check_endpoint": "http://[::1"})

    async def probe(target: MonitorTarget) -> ProbeStatus:
        raise AssertionError("delegated targets must not be probed locally")

    location, status = await check_target(broken, probe, "AMS")

    assert location == "AMS"
    assert status == ProbeStatus(ok=False, latency_ms=0, error=REMOTE_CHECK_FAILED)
