from __future__ import annotations

from fastapi.testclient import TestClient

from identity_service.main import app


def test_healthz_reports_ok():
    # no context manager: the lifespan (and its Postgres pool) is not started
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_metrics_exposes_identity_counters():
    client = TestClient(app)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "identity_registrations_total" in response.text
    assert "identity_login_attempts_total" in response.text
