from fastapi.testclient import TestClient

from galerium.main import create_app


def test_root_banner(client):
    body = client.get("/").json()
    assert body["message"] == "Galerium API running"
    assert body["version"] == "1.0.0"
    assert body["timestamp"].endswith("Z")


def test_health_reports_dependencies(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "OK"
    assert body["database"] == "Connected"
    assert body["mercado_pago"] == "Configured"
    assert body["environment"] == "test"
    assert body["memory"]["max_rss_mb"] > 0
    assert all(isinstance(n, int) for n in body["memory"]["gc_counts"])
    assert "gc_objects" not in body["memory"]


def test_health_without_gateway(settings, database):
    with TestClient(create_app(settings, database=database)) as client:
        assert client.get("/health").json()["mercado_pago"] == "Not configured"


def test_health_database_down(client, database, monkeypatch):
    def boom():
        raise RuntimeError("connection refused")

    monkeypatch.setattr(database, "ping", boom)
    resp = client.get("/health")
    assert resp.status_code == 503
    body = resp.json()
    assert body["message"] == "ERROR"
    assert body["database"] == "Disconnected"
    assert body["error"] == "connection refused"


def test_metrics_snapshot(client):
    body = client.get("/metrics").json()
    assert set(body) >= {"timestamp", "uptime", "memory", "cpu", "python_version", "platform", "arch"}
    assert body["cpu"]["user_seconds"] >= 0


def test_unknown_route_uses_error_shape(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Route not found"}


def test_request_id_is_echoed(client):
    resp = client.get("/", headers={"x-request-id": "abc-123"})
    assert resp.headers["x-request-id"] == "abc-123"
    assert client.get("/").headers["x-request-id"]


def test_unhandled_errors_are_generic(settings, database):
    app = create_app(settings, database=database)

    @app.get("/explode")
    def explode():
        raise RuntimeError("secret internals")

    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/explode")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}
