from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from stagerelay.config import SqlConfigStore
from stagerelay.main import create_app
from stagerelay.models.session import get_sessionmaker
from stagerelay.runtime import build_runtime
from stagerelay.settings import Settings


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LOG_TO_STDERR", "false")
    settings = Settings(
        database_url=f"sqlite+pysqlite:///{tmp_path / 'relay.db'}",
        orchestrator_interval=3600,
        status_broadcast_interval=3600,
    )
    store = SqlConfigStore(get_sessionmaker(settings.database_url))
    store.create_schema()

    # No source factories: saved configs must never launch real connectors here.
    app = create_app(settings, lambda s: build_runtime(s, store=store, factories={}))
    with TestClient(app) as test_client:
        yield test_client


def _save(client, code, **values):
    return client.post(
        "/api/config",
        json={"configCode": code, "values": [{"key": k, "value": v} for k, v in values.items()]},
    )


def test_save_and_read_config(client):
    resp = _save(client, "pro-presenter", HOST="10.0.0.5", PORT="8999")

    assert resp.status_code == 201
    assert resp.json() == {"configCode": "pro-presenter", "values": {"HOST": "10.0.0.5", "PORT": "8999"}}

    resp = client.get("/api/config/pro-presenter")
    assert resp.status_code == 200
    assert resp.json()["values"]["PORT"] == "8999"

    resp = client.get("/api/config")
    assert resp.json() == [
        {"configCode": "pro-presenter", "values": {"HOST": "10.0.0.5", "PORT": "8999"}}
    ]


def test_unknown_config_returns_404(client):
    assert client.get("/api/config/holyrics").status_code == 404
    assert client.delete("/api/config/holyrics").status_code == 404
    assert client.delete("/api/config/holyrics/URL").status_code == 404


def test_delete_value_and_set(client):
    _save(client, "holyrics", URL="http://display.local", TIMEOUT="30")

    assert client.delete("/api/config/holyrics/TIMEOUT").status_code == 204
    assert client.get("/api/config/holyrics").json()["values"] == {"URL": "http://display.local"}

    assert client.delete("/api/config/holyrics").status_code == 204
    assert client.get("/api/config/holyrics").status_code == 404


def test_invalid_payload_is_rejected(client):
    resp = client.post("/api/config", json={"values": []})

    assert resp.status_code == 422


def test_health_and_status(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"

    resp = client.get("/api/status")
    body = resp.json()
    assert body["sources"] == {}
    assert body["status"]["holyrics"]["items"] == {"active": False}
    assert body["status"]["pro-presenter"]["items"] == {"active": False}
