"""Smoke tests for the Flask application."""

from datetime import datetime

from auditlog.config import reset_config
from auditlog.main import create_app


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "ok"
    assert data["service"] == "audit-log-service"
    timestamp = datetime.fromisoformat(data["timestamp"])
    assert timestamp.tzinfo is not None


def test_metrics(client):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert b"auditlog_requests_total" in response.data


def test_not_found(client):
    response = client.get("/missing")
    assert response.status_code == 404
    payload = response.get_json()
    assert payload["error"]["code"] == 404


def test_extensions_registered(app):
    assert "user" in app.extensions["subject_registry"]
    assert app.extensions["cache_service"].enabled is False
    assert app.extensions["audit_recorder"] is not None


def test_cors_headers(client):
    response = client.get("/health")
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_custom_cors_origin_allowed():
    reset_config({"CORS_ORIGINS": "https://allowed.example"})
    try:
        app = create_app()
        app.config.update({"TESTING": True})
        with app.test_client() as client:
            response = client.get(
                "/health", headers={"Origin": "https://allowed.example"}
            )
            assert (
                response.headers["Access-Control-Allow-Origin"]
                == "https://allowed.example"
            )
    finally:
        reset_config({"CORS_ORIGINS": None})
