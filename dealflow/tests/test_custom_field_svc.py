"""Test pipeline custom field definition service."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from dealflow.errors import ConfigurationError
from dealflow.fields.types import FieldType
from dealflow.models.location import Location
from dealflow.schemas.custom_field import FieldDefinitionCreate, FieldDefinitionUpdate
from dealflow.schemas.opportunity import OpportunityCreate
from dealflow.services import custom_field_svc, opportunity_svc


@pytest.mark.asyncio
async def test_create_and_list_definitions(db: AsyncSession, sales):
    await custom_field_svc.create_definition(
        db, sales.id,
        FieldDefinitionCreate(name="delivery_date", label="Delivery date", field_type="date", required=True),
    )
    await custom_field_svc.create_definition(
        db, sales.id,
        FieldDefinitionCreate(
            name="segment", label="Segment", field_type="select",
            options='[{"value": "smb", "label": "SMB"}, "enterprise"]',
            visible_in_kanban=True, group="Profile",
        ),
    )

    definitions = await custom_field_svc.read_definitions(db, sales.id)
    assert [d.name for d in definitions] == ["delivery_date", "segment"]
    assert [d.position for d in definitions] == [0, 1]
    assert definitions[1].option_values == ["smb", "enterprise"]
    assert definitions[1].group_label == "Profile"
    assert definitions[0].group_label == "General"

    kanban = await custom_field_svc.read_definitions(db, sales.id, kanban_only=True)
    assert [d.name for d in kanban] == ["segment"]
    required = await custom_field_svc.read_definitions(db, sales.id, required_only=True)
    assert [d.name for d in required] == ["delivery_date"]


@pytest.mark.asyncio
async def test_duplicate_name_rejected(db: AsyncSession, sales):
    data = FieldDefinitionCreate(name="ref", label="Reference", field_type="text")
    await custom_field_svc.create_definition(db, sales.id, data)
    with pytest.raises(ConfigurationError):
        await custom_field_svc.create_definition(db, sales.id, data)


@pytest.mark.asyncio
async def test_stage_scoped_definitions(db: AsyncSession, sales):
    proposal = sales.stages[1]
    await custom_field_svc.create_definition(
        db, sales.id, FieldDefinitionCreate(name="owner", label="Owner", field_type="text")
    )
    await custom_field_svc.create_definition(
        db, sales.id,
        FieldDefinitionCreate(name="proposal_url", label="Proposal", field_type="url", stage_id=proposal.id),
    )

    assert [d.name for d in await custom_field_svc.read_definitions(db, sales.id)] == ["owner"]
    scoped = await custom_field_svc.read_definitions(db, sales.id, stage_id=proposal.id)
    assert [d.name for d in scoped] == ["owner", "proposal_url"]
    everything = await custom_field_svc.read_definitions(db, sales.id, all_stages=True)
    assert len(everything) == 2


@pytest.mark.asyncio
async def test_update_label_without_migration(db: AsyncSession, sales):
    defn = await custom_field_svc.create_definition(
        db, sales.id, FieldDefinitionCreate(name="ref", label="Reference", field_type="text")
    )
    updated = await custom_field_svc.update_definition(
        db, defn.id, FieldDefinitionUpdate(label="Customer reference", group="Profile")
    )
    assert updated.label == "Customer reference"
    assert updated.group_name == "Profile"


@pytest.mark.asyncio
async def test_rename_requires_migration(db: AsyncSession, sales):
    defn = await custom_field_svc.create_definition(
        db, sales.id, FieldDefinitionCreate(name="ref", label="Reference", field_type="text")
    )
    with pytest.raises(ConfigurationError):
        await custom_field_svc.update_definition(db, defn.id, FieldDefinitionUpdate(name="reference"))
    with pytest.raises(ConfigurationError):
        await custom_field_svc.update_definition(
            db, defn.id, FieldDefinitionUpdate(field_type=FieldType.NUMBER)
        )


@pytest.mark.asyncio
async def test_rename_and_retype_migrates_values(db: AsyncSession, location: Location, sales):
    lead = sales.stages[0]
    defn = await custom_field_svc.create_definition(
        db, sales.id, FieldDefinitionCreate(name="qty", label="Quantity", field_type="text")
    )
    good = await opportunity_svc.create_opportunity(
        db, location.id,
        OpportunityCreate(name="Good", pipeline_id=sales.id, stage_id=lead.id, custom_fields={"qty": "12"}),
    )
    bad = await opportunity_svc.create_opportunity(
        db, location.id,
        OpportunityCreate(name="Bad", pipeline_id=sales.id, stage_id=lead.id, custom_fields={"qty": "a dozen"}),
    )

    updated = await custom_field_svc.update_definition(
        db, defn.id,
        FieldDefinitionUpdate(name="quantity", field_type=FieldType.NUMBER, migrate=True),
    )
    assert updated.name == "quantity"
    assert updated.field_type == "number"

    good = await opportunity_svc.get_opportunity(db, good.id)
    bad = await opportunity_svc.get_opportunity(db, bad.id)
    assert good.custom_fields == {"quantity": 12.0}
    assert bad.custom_fields == {}


@pytest.mark.asyncio
async def test_delete_definition(db: AsyncSession, sales):
    defn = await custom_field_svc.create_definition(
        db, sales.id, FieldDefinitionCreate(name="ref", label="Reference", field_type="text")
    )
    assert await custom_field_svc.delete_definition(db, defn.id) is True
    assert await custom_field_svc.delete_definition(db, defn.id) is False
