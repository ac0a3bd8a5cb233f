from __future__ import annotations
from fastapi.testclient import TestClient
from apps.site_agent.main import app

client = TestClient(app)

def test_health_ready():
    r = client.get("/readyz")
    assert r.status_code == 200
    assert r.json().get("ok") is True

def test_site_metrics_and_status():
    assert "overwatch_queue_depth 0" in client.get("/metrics").text
    status = client.get("/overwatch/status").json()
    assert status["site_machine_name"] == "test_site"
    assert status["connected"] is False
