"""Health endpoint tests."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import text

from dealflow import __version__


@pytest.mark.asyncio
async def test_health_endpoint(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_ready_endpoint(client: AsyncClient):
    resp = await client.get("/ready")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ready", "service": "dealflow", "version": __version__}


@pytest.mark.asyncio
async def test_ready_reports_missing_tables(client: AsyncClient, engine):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE stage_transition"))

    resp = await client.get("/ready")
    assert resp.status_code == 503
    assert resp.json()["missing_tables"] == ["stage_transition"]

    resp = await client.get("/health")
    assert resp.status_code == 200
