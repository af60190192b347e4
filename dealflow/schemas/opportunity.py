"""Opportunity schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OpportunityCreate(BaseModel):
    name: str = Field(min_length=1)
    pipeline_id: uuid.UUID
    stage_id: uuid.UUID
    monetary_value: float | None = Field(default=None, ge=0)
    expected_close_date: date | None = None
    notes: str | None = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)


class OpportunityUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    stage_id: uuid.UUID | None = None
    monetary_value: float | None = Field(default=None, ge=0)
    expected_close_date: date | None = None
    notes: str | None = None
    custom_fields: dict[str, Any] | None = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value: str | None) -> str:
        # Omit the key to keep the current name; null would blank a required column
        if value is None:
            raise ValueError("name cannot be null")
        return value


class OpportunityMove(BaseModel):
    stage_id: uuid.UUID
    expected_version: int | None = None


class OpportunityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    pipeline_id: uuid.UUID
    stage_id: uuid.UUID
    name: str
    monetary_value: float | None = None
    weighted_value: float | None = None
    expected_close_date: date | None = None
    notes: str | None = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    status: str = "open"
    closed_at: datetime | None = None
    entered_stage_at: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1


class OpportunityPage(BaseModel):
    items: list[OpportunityRead] = Field(default_factory=list)
    total_count: int = 0
    total_value: float = 0.0
    offset: int = 0
    limit: int = 0


class StageTransitionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    opportunity_id: uuid.UUID
    from_stage_id: uuid.UUID | None = None
    to_stage_id: uuid.UUID
    transitioned_at: datetime
    days_in_previous_stage: float | None = None
