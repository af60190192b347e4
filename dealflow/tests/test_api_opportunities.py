"""Test opportunity API routes."""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from dealflow.models.location import Location


async def _setup(client: AsyncClient, slug: str) -> dict:
    resp = await client.post(f"/loc/{slug}/pipelines", json={
        "name": "Sales",
        "stages": [
            {"name": "Lead", "position": 0, "probability_percent": 10},
            {"name": "Proposal", "position": 1, "probability_percent": 50},
            {"name": "Won", "position": 2, "probability_percent": 100, "is_won": True},
        ],
    })
    return resp.json()


async def _create(client: AsyncClient, slug: str, pipeline: dict, stage: dict, **extra):
    return await client.post(f"/loc/{slug}/opportunities", json={
        "name": extra.pop("name", "Deal"),
        "pipeline_id": pipeline["id"],
        "stage_id": stage["id"],
        **extra,
    })


@pytest.mark.asyncio
async def test_create_and_get(client: AsyncClient, location: Location):
    pipeline = await _setup(client, location.slug)
    resp = await _create(client, location.slug, pipeline, pipeline["stages"][0], monetary_value=1000)
    assert resp.status_code == 201
    opp = resp.json()
    assert opp["weighted_value"] == pytest.approx(100.0)
    assert opp["version"] == 1

    resp = await client.get(f"/loc/{location.slug}/opportunities/{opp['id']}")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Deal"


@pytest.mark.asyncio
async def test_validation_errors_carry_field_map(client: AsyncClient, location: Location):
    pipeline = await _setup(client, location.slug)
    await client.post(f"/loc/{location.slug}/pipelines/{pipeline['id']}/fields", json={
        "name": "delivery_date", "label": "Delivery date", "field_type": "date", "required": True,
    })

    resp = await _create(client, location.slug, pipeline, pipeline["stages"][0])
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "ValidationError"
    assert body["errors"] == {
        "delivery_date": {"kind": "missing_required_field", "message": "Delivery date is required"}
    }


@pytest.mark.asyncio
async def test_move_and_history(client: AsyncClient, location: Location):
    pipeline = await _setup(client, location.slug)
    lead, proposal = pipeline["stages"][0], pipeline["stages"][1]
    opp = (await _create(client, location.slug, pipeline, lead, monetary_value=1000)).json()

    resp = await client.post(
        f"/loc/{location.slug}/opportunities/{opp['id']}/move",
        json={"stage_id": proposal["id"], "expected_version": 1},
    )
    assert resp.status_code == 200
    moved = resp.json()
    assert moved["stage_id"] == proposal["id"]
    assert moved["weighted_value"] == pytest.approx(500.0)
    assert moved["version"] == 2

    resp = await client.get(f"/loc/{location.slug}/opportunities/{opp['id']}/transitions")
    assert [t["to_stage_id"] for t in resp.json()] == [lead["id"], proposal["id"]]

    resp = await client.get(f"/loc/{location.slug}/opportunities/{opp['id']}/time-in-stages")
    assert set(resp.json()) == {lead["id"], proposal["id"]}

    resp = await client.get(f"/loc/{location.slug}/opportunities/{opp['id']}/metrics")
    assert resp.json()["weighted_value"] == pytest.approx(500.0)
    assert resp.json()["is_stagnant"] is False


@pytest.mark.asyncio
async def test_stale_version_conflict(client: AsyncClient, location: Location):
    pipeline = await _setup(client, location.slug)
    opp = (await _create(client, location.slug, pipeline, pipeline["stages"][0])).json()

    resp = await client.post(
        f"/loc/{location.slug}/opportunities/{opp['id']}/move",
        json={"stage_id": pipeline["stages"][1]["id"], "expected_version": 7},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "MoveConflict"


@pytest.mark.asyncio
async def test_move_to_foreign_stage_not_allowed(client: AsyncClient, location: Location):
    pipeline = await _setup(client, location.slug)
    other = (await client.post(f"/loc/{location.slug}/pipelines", json={
        "name": "Support", "stages": [{"name": "Open", "position": 0}],
    })).json()
    opp = (await _create(client, location.slug, pipeline, pipeline["stages"][0])).json()

    resp = await client.post(
        f"/loc/{location.slug}/opportunities/{opp['id']}/move",
        json={"stage_id": other["stages"][0]["id"]},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "TransitionNotAllowed"


@pytest.mark.asyncio
async def test_stage_page(client: AsyncClient, location: Location):
    pipeline = await _setup(client, location.slug)
    lead = pipeline["stages"][0]
    for i in range(5):
        await _create(client, location.slug, pipeline, lead, name=f"Deal {i}", monetary_value=100)

    resp = await client.get(
        f"/loc/{location.slug}/stages/{lead['id']}/opportunities", params={"offset": 3, "limit": 2}
    )
    page = resp.json()
    assert len(page["items"]) == 2
    assert page["total_count"] == 5
    assert page["total_value"] == 500.0
    assert page["offset"] == 3


@pytest.mark.asyncio
async def test_update_and_delete(client: AsyncClient, location: Location):
    pipeline = await _setup(client, location.slug)
    opp = (await _create(client, location.slug, pipeline, pipeline["stages"][0], monetary_value=100)).json()

    resp = await client.patch(
        f"/loc/{location.slug}/opportunities/{opp['id']}", json={"monetary_value": 300, "notes": "Call"}
    )
    assert resp.status_code == 200
    assert resp.json()["weighted_value"] == pytest.approx(30.0)
    assert resp.json()["notes"] == "Call"

    resp = await client.delete(f"/loc/{location.slug}/opportunities/{opp['id']}")
    assert resp.status_code == 204
    resp = await client.get(f"/loc/{location.slug}/opportunities/{opp['id']}")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


@pytest.mark.asyncio
async def test_unknown_opportunity(client: AsyncClient, location: Location):
    resp = await client.get(f"/loc/{location.slug}/opportunities/{uuid.uuid4()}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_rejects_null_name(client: AsyncClient, location: Location):
    pipeline = await _setup(client, location.slug)
    opp = (await _create(client, location.slug, pipeline, pipeline["stages"][0])).json()

    resp = await client.patch(f"/loc/{location.slug}/opportunities/{opp['id']}", json={"name": None})
    assert resp.status_code == 422

    resp = await client.get(f"/loc/{location.slug}/opportunities/{opp['id']}")
    assert resp.json()["name"] == "Deal"
    assert resp.json()["version"] == 1
