"""Smoke tests for the Alembic migrations."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from dealflow.config import settings


def _config() -> Config:
    package_root = Path(__file__).resolve().parents[1]
    return Config(str(package_root / "alembic.ini"))


def test_alembic_upgrade_creates_tables(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "dealflow_migrations.db"
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{db_path}")

    command.upgrade(_config(), "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        opportunity_columns = {c["name"] for c in inspector.get_columns("opportunity")}
    finally:
        engine.dispose()

    assert {
        "location",
        "pipeline",
        "pipeline_stage",
        "pipeline_field_definition",
        "opportunity",
        "stage_transition",
    } <= tables
    assert {"entered_stage_at", "weighted_value", "custom_fields", "version"} <= opportunity_columns


def test_alembic_downgrade_drops_tables(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "dealflow_downgrade.db"
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{db_path}")

    cfg = _config()
    command.upgrade(cfg, "head")
    command.downgrade(cfg, "base")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()

    assert "opportunity" not in tables
    assert "pipeline" not in tables
