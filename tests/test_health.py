"""
Health endpoint tests
"""

import datetime

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check_success(client: AsyncClient):
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert isinstance(data["uptime"], (int, float))
    datetime.datetime.fromisoformat(data["timestamp"].replace('Z', '+00:00'))


@pytest.mark.asyncio
async def test_readiness_reports_features(client: AsyncClient):
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 200
    features = response.json()["features"]["flag_summary"]
    assert set(features) == {"bulk_operations", "spreadsheet_import", "auto_create_hierarchy", "csv_export"}


@pytest.mark.asyncio
async def test_liveness(client: AsyncClient):
    response = await client.get("/api/v1/health/live")
    assert response.json()["status"] == "alive"


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    response = await client.get("/")
    assert response.json()["health"] == "/api/v1/health"
