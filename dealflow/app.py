"""FastAPI application for the pipeline engine API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .errors import DealflowError, ValidationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level.upper())
    # Auto-create tables for local SQLite; production and PostgreSQL use Alembic migrations
    if "sqlite" in settings.database_url and not settings.is_production:
        from . import database
        await database.create_tables(database.engine)
    logger.info("Dealflow API started (%s)", settings.environment)
    yield


app = FastAPI(title=settings.app_title, lifespan=lifespan)


@app.exception_handler(DealflowError)
async def dealflow_error_handler(request: Request, exc: DealflowError):
    body = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ValidationError):
        body["errors"] = {name: err.to_dict() for name, err in exc.errors.items()}
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


# Import and register routers
from .routers import custom_fields, health, opportunities, pipelines  # noqa: E402

app.include_router(pipelines.router)
app.include_router(custom_fields.router)
app.include_router(opportunities.router)
app.include_router(health.router)
