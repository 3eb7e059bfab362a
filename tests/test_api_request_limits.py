from __future__ import annotations

from fastapi.testclient import TestClient

from dcdn.api.app import create_app


def test_request_size_limit_returns_413(monkeypatch):
    # Make limit very small for test determinism.
    monkeypatch.setenv("DCDN_MAX_REQUEST_BYTES", "128")

    app = create_app(boot_runtime=False)
    c = TestClient(app)

    payload = {"node_id": "n1", "location": "x" * 500, "capacity": 1}

    r = c.post("/v1/nodes", json=payload)
    assert r.status_code == 413

    j = r.json()
    assert j.get("ok") is False
    assert isinstance(j.get("error"), dict)
    assert j["error"].get("code") == "request_too_large"


def test_health_is_exempt_from_size_limit(monkeypatch):
    monkeypatch.setenv("DCDN_MAX_REQUEST_BYTES", "1")

    c = TestClient(create_app(boot_runtime=False))
    assert c.get("/v1/health").status_code == 200
