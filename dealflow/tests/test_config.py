"""Tests for settings helpers and their use at startup."""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.pool import StaticPool

from dealflow.app import app, lifespan
from dealflow.config import DealflowSettings, settings
from dealflow.database import create_tables, make_engine, make_session_factory
from dealflow.models.location import Location


def test_tenant_access_tokens_map():
    cfg = DealflowSettings(tenant_access_tokens=" acme:t0k , broken, beta: s3 ,:x")
    assert cfg.tenant_access_tokens_map == {"acme": "t0k", "beta": "s3"}
    assert DealflowSettings(tenant_access_tokens="").tenant_access_tokens_map == {}


@pytest.mark.parametrize(
    "environment,expected",
    [("development", False), ("production", True), (" PROD ", True), ("staging", False)],
)
def test_is_production(environment, expected):
    assert DealflowSettings(environment=environment).is_production is expected


@pytest.mark.asyncio
async def test_production_skips_table_autocreate(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "database_url", "sqlite+aiosqlite:///:memory:")
    engine = MagicMock()
    with patch("dealflow.database.engine", engine):
        async with lifespan(app):
            pass
    engine.begin.assert_not_called()


@pytest.mark.asyncio
async def test_memory_engine_shares_one_connection():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    try:
        assert isinstance(engine.sync_engine.pool, StaticPool)
        await create_tables(engine)
        async with make_session_factory(engine)() as session:
            session.add(Location(name="Acme", slug="acme"))
            await session.commit()
        async with make_session_factory(engine)() as session:
            result = await session.execute(select(Location.slug))
            assert result.scalars().all() == ["acme"]
    finally:
        await engine.dispose()
