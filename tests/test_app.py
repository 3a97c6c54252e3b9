"""Test the remote check endpoint."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from uptime_reconciler import app as app_module
from uptime_reconciler.config import Settings
from uptime_reconciler.db import Database
from uptime_reconciler.models import MonitorTarget, ProbeStatus, RemoteCheckResponse


@pytest.fixture
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monitors_file = tmp_path / "monitors.json"
    monitors_file.write_text(
        json.dumps([{"id": "web", "name": "Web", "target": "https://example.com"}])
    )
    settings = Settings(monitors_file=monitors_file, location="SIN")
    monkeypatch.setattr(app_module, "get_settings", lambda: settings)

    async def fake_probe(target: MonitorTarget) -> ProbeStatus:
        return ProbeStatus(ok=False, latency_ms=31, error="HTTP 503")

    monkeypatch.setattr(app_module, "probe_target", fake_probe)
    return TestClient(app_module.create_app())


def test_remote_check_probes_known_target(client: TestClient) -> None:
    response = client.post("/", json={"target": "web"})

    assert response.status_code == 200
    assert response.json() == {
        "location": "SIN",
        "status": {"ok": False, "latencyMs": 31, "error": "HTTP 503"},
    }
    assert RemoteCheckResponse.model_validate(response.json()).status.latency_ms == 31


def test_remote_check_rejects_unknown_target(client: TestClient) -> None:
    response = client.post("/", json={"target": "missing"})

    assert response.status_code == 404
    assert response.json() == {"detail": "Target Not Found"}


def test_get_is_not_allowed(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 405
    assert response.text == "Remote worker is working..."


def test_healthz(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}


def test_lifespan_hands_its_database_to_the_worker(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}", scheduler_enabled=True
    )
    monkeypatch.setattr(app_module, "get_settings", lambda: settings)
    received: list[object] = []

    async def fake_worker(worker_settings: Settings, database: Database) -> None:
        received.append(database)

    monkeypatch.setattr(app_module, "worker_task", fake_worker)
    fastapi_app = app_module.create_app()

    with TestClient(fastapi_app) as client:
        assert client.get("/healthz").status_code == 200
        database = fastapi_app.state.database

    assert isinstance(database, Database)
    assert received == [database]


@pytest.mark.asyncio
async def test_resolve_target_prefers_discovered_record(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monitors_file = tmp_path / "monitors.json"
    monitors_file.write_text(
        json.dumps([{"id": "web", "name": "Static", "target": "https://static.example.com"}])
    )
    settings = Settings(
        monitors_file=monitors_file, cloudflare_zone_id="zone", cloudflare_api_token="token"
    )
    discovered = MonitorTarget(id="web", name="web", target="https://web/")

    class FakeDiscovery:
        def __init__(self, zone_id: str, api_token: str) -> None:
            pass

        async def find(self, name: str) -> MonitorTarget | None:
            return discovered if name == "web" else None

    monkeypatch.setattr(app_module, "CloudflareDiscovery", FakeDiscovery)

    assert await app_module.resolve_target("web", settings) == discovered
    assert await app_module.resolve_target("other", settings) is None
