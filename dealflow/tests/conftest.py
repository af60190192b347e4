"""Async test fixtures: SQLite database, API client and an in-memory gateway."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from dealflow.database import create_tables, get_db, make_engine, make_session_factory
from dealflow.engine.gateway import PipelineGateway
from dealflow.engine.http_gateway import HTTPGateway
from dealflow.engine.metrics import weighted_value
from dealflow.engine.sql_gateway import SQLGateway
from dealflow.errors import NotFound
from dealflow.models.location import Location
from dealflow.schemas.opportunity import OpportunityPage, OpportunityRead
from dealflow.schemas.pipeline import PipelineDetail, PipelineRead, StageCreate, StageRead, StageSummary
from dealflow.services import pipeline_svc


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = make_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def location(db: AsyncSession):
    loc = Location(
        id=uuid.uuid4(),
        name="Test Location",
        slug="test-location",
        timezone="UTC",
    )
    db.add(loc)
    await db.commit()
    await db.refresh(loc)
    return loc


@pytest_asyncio.fixture
async def sales(db: AsyncSession, location: Location):
    """Pipeline "Sales": Lead 10%, Proposal 50%, Won 100%, Lost 0%."""
    return await pipeline_svc.create_pipeline(
        db, location.id, "Sales",
        stages=[
            StageCreate(name="Lead", position=0, probability_percent=10, stagnation_alert_days=7),
            StageCreate(name="Proposal", position=1, probability_percent=50),
            StageCreate(name="Won", position=2, probability_percent=100, is_won=True),
            StageCreate(name="Lost", position=3, probability_percent=0, is_lost=True),
        ],
    )


@pytest_asyncio.fixture
async def client(engine):
    """HTTPX async test client against the Dealflow app."""
    from dealflow.app import app

    session_factory = make_session_factory(engine)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_gateway(client, location: Location):
    """HTTPGateway bound to the app in-process, scoped to the test location."""
    from dealflow.app import app

    gateway = HTTPGateway(location.slug, base_url="http://test", transport=ASGITransport(app=app))
    yield gateway
    await gateway.close()


@pytest_asyncio.fixture
async def sql_gateway(session_factory, location: Location):
    return SQLGateway(session_factory, location.id)


# ── In-memory gateway for controller tests ─────────────────────────────────

class FakeGateway(PipelineGateway):
    """Keeps opportunities in memory; moves can be held or made to fail."""

    def __init__(self, pipeline: PipelineDetail, definitions=None):
        self.pipeline = pipeline
        self.definitions = list(definitions or [])
        self.opportunities: dict[uuid.UUID, OpportunityRead] = {}
        self.calls: list[tuple] = []
        self.move_error: Exception | None = None
        self.save_error: Exception | None = None
        self.page_error: Exception | None = None
        # Set to an Event to hold move responses until it is set
        self.hold_moves: asyncio.Event | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return None

    def add(self, stage_id: uuid.UUID, name: str, value: float | None = None, **extra) -> OpportunityRead:
        stage = self.pipeline.stage(stage_id)
        opp = OpportunityRead(
            id=uuid.uuid4(),
            pipeline_id=self.pipeline.id,
            stage_id=stage_id,
            name=name,
            monetary_value=value,
            weighted_value=weighted_value(value, stage.probability_percent),
            entered_stage_at=extra.pop("entered_stage_at", datetime.now(timezone.utc)),
            **extra,
        )
        self.opportunities[opp.id] = opp
        return opp

    def in_stage(self, stage_id: uuid.UUID) -> list[OpportunityRead]:
        return [o for o in self.opportunities.values() if o.stage_id == stage_id]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def list_pipelines(self) -> list[PipelineRead]:
        self.calls.append(("list_pipelines",))
        return [PipelineRead.model_validate(self.pipeline.model_dump())]

    async def get_pipeline_with_stages(self, pipeline_id):
        self.calls.append(("get_pipeline_with_stages", pipeline_id))
        if pipeline_id != self.pipeline.id:
            raise NotFound("Pipeline not found")
        return self.pipeline

    async def list_field_definitions(self, pipeline_id):
        self.calls.append(("list_field_definitions", pipeline_id))
        return list(self.definitions)

    async def list_opportunities_page(self, stage_id, offset, limit):
        self.calls.append(("list_opportunities_page", stage_id, offset, limit))
        if self.page_error is not None:
            raise self.page_error
        items = self.in_stage(stage_id)
        return OpportunityPage(
            items=items[offset:offset + limit],
            total_count=len(items),
            total_value=sum(o.monetary_value or 0 for o in items),
            offset=offset,
            limit=limit,
        )

    async def get_opportunity(self, opp_id):
        self.calls.append(("get_opportunity", opp_id))
        if opp_id not in self.opportunities:
            raise NotFound("Opportunity not found")
        return self.opportunities[opp_id]

    async def create_opportunity(self, payload):
        self.calls.append(("create_opportunity", payload))
        if self.save_error is not None:
            raise self.save_error
        data = payload.model_dump(exclude={"pipeline_id", "stage_id", "monetary_value", "name"})
        return self.add(payload.stage_id, payload.name, payload.monetary_value, **data)

    async def update_opportunity(self, opp_id, patch):
        self.calls.append(("update_opportunity", opp_id, patch))
        if self.save_error is not None:
            raise self.save_error
        current = await self.get_opportunity(opp_id)
        updated = current.model_copy(
            update={**patch.model_dump(exclude_unset=True), "version": current.version + 1}
        )
        self.opportunities[opp_id] = updated
        return updated

    async def move_opportunity(self, opp_id, stage_id, expected_version=None):
        self.calls.append(("move_opportunity", opp_id, stage_id))
        if self.hold_moves is not None:
            await self.hold_moves.wait()
        if self.move_error is not None:
            raise self.move_error
        current = await self.get_opportunity(opp_id)
        stage = self.pipeline.stage(stage_id)
        moved = current.model_copy(update={
            "stage_id": stage_id,
            "entered_stage_at": datetime.now(timezone.utc),
            "weighted_value": weighted_value(current.monetary_value, stage.probability_percent),
            "version": current.version + 1,
        })
        self.opportunities[opp_id] = moved
        return moved

    async def list_stage_summaries(self, pipeline_id):
        self.calls.append(("list_stage_summaries", pipeline_id))
        summaries = []
        for stage in self.pipeline.stages:
            items = self.in_stage(stage.id)
            summaries.append(StageSummary(
                stage_id=stage.id,
                name=stage.name,
                position=stage.position,
                probability_percent=stage.probability_percent,
                is_won=stage.is_won,
                is_lost=stage.is_lost,
                total_count=len(items),
                total_value=sum(o.monetary_value or 0 for o in items),
                weighted_value=sum(o.weighted_value or 0 for o in items),
            ))
        return summaries


def _stage(pipeline_id, name, position, probability, **flags) -> StageRead:
    return StageRead(
        id=uuid.uuid4(), pipeline_id=pipeline_id, name=name, position=position,
        probability_percent=probability, **flags,
    )


@pytest.fixture
def sales_pipeline() -> PipelineDetail:
    pipeline_id = uuid.uuid4()
    return PipelineDetail(
        id=pipeline_id,
        name="Sales",
        stages=[
            _stage(pipeline_id, "Lead", 0, 10, stagnation_alert_days=7),
            _stage(pipeline_id, "Proposal", 1, 50),
            _stage(pipeline_id, "Won", 2, 100, is_won=True),
            _stage(pipeline_id, "Lost", 3, 0, is_lost=True),
        ],
    )


@pytest.fixture
def gateway(sales_pipeline: PipelineDetail) -> FakeGateway:
    return FakeGateway(sales_pipeline)


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner
    return CliRunner()
