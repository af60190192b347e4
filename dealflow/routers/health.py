"""Health and readiness checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncSession

from .. import __version__
from ..database import get_db
from ..models import Base

router = APIRouter(tags=["health"])


def _missing_tables(session) -> list[str]:
    present = set(inspect(session.connection()).get_table_names())
    return sorted(set(Base.metadata.tables) - present)


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "healthy", "service": "dealflow"}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Ready once the database answers and every pipeline table exists."""
    missing = await db.run_sync(_missing_tables)
    if missing:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "service": "dealflow", "missing_tables": missing},
        )
    return {"status": "ready", "service": "dealflow", "version": __version__}
