"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response in the success envelope with version and components
  - components.database reports 'ok' when both stores answer
  - No authentication required
"""

from __future__ import annotations

from api.main import VERSION


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with version and components under data."""
    client, _users, _todos = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert body["data"]["version"] == VERSION
    assert body["data"]["components"] == {"app": "ok", "database": "ok"}


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _users, _todos = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_health_in_production_mode(prod_client):
    client, _users, _todos = prod_client
    assert client.get("/api/v1/health").json()["data"]["components"]["database"] == "ok"
