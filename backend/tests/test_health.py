from fastapi.testclient import TestClient

from wishdraw.core.security import create_access_token
from wishdraw.main import app


def test_health_ok():
    client = TestClient(app)
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json().get("status") == "ok"
    assert res.headers.get("X-Request-Id")
    assert res.headers.get("X-Content-Type-Options") == "nosniff"


def test_health_db_ok():
    with TestClient(app) as client:
        res = client.get("/health/db")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "database": "1"}


def test_request_id_is_echoed():
    client = TestClient(app)
    res = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert res.headers.get("X-Request-Id") == "req-123"


def test_metrics_include_draw_counters():
    client = TestClient(app)
    client.get("/health")
    res = client.get("/metrics")
    assert res.status_code == 200
    data = res.json()
    assert data["requests_total"] >= 1
    assert "/health" in data["by_path"]
    assert set(data["draws"]) == {"manual", "scheduled", "sweeps"}
    assert set(data["draws"]["manual"]) == {"total", "executed", "failed", "failures", "avg_latency_ms"}


def test_draw_requires_token():
    client = TestClient(app)
    res = client.get("/groups/1/draw")
    assert res.status_code == 401


def test_draw_rejects_garbage_token():
    client = TestClient(app)
    res = client.get("/groups/1/draw", headers={"Authorization": "Bearer invalid.token.here"})
    assert res.status_code == 401


def test_draw_rejects_expired_token():
    client = TestClient(app)
    expired = create_access_token("1", expires_delta_minutes=-1)
    res = client.get("/groups/1/draw", headers={"Authorization": f"Bearer {expired}"})
    assert res.status_code == 401
