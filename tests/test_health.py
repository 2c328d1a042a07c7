# mypy: ignore-errors
# tests/test_health.py
"""Tests for the service-level endpoints."""

from fastapi import status


def test_health_check(client) -> None:
    """The health endpoint reports ok."""
    response = client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


def test_root_describes_api(client) -> None:
    """The root endpoint points at the docs."""
    response = client.get("/")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["docs"] == "/docs"
    assert "version" in data
