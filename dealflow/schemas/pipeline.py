"""Pipeline and stage schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field


class StageCreate(BaseModel):
    name: str = Field(min_length=1)
    position: int | None = None
    color: str | None = None
    probability_percent: float | None = Field(default=None, ge=0, le=100)
    is_won: bool = False
    is_lost: bool = False
    stagnation_alert_days: int | None = Field(default=None, ge=0)


class StageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    pipeline_id: uuid.UUID
    name: str
    color: str | None = None
    position: int
    probability_percent: float | None = None
    is_won: bool = False
    is_lost: bool = False
    stagnation_alert_days: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.is_won or self.is_lost


class PipelineCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    color: str | None = None
    stages: list[StageCreate] = Field(default_factory=list)


class PipelineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    color: str | None = None
    is_active: bool = True
    position: int = 0


class PipelineDetail(PipelineRead):
    stages: list[StageRead] = Field(default_factory=list)

    def stage(self, stage_id: uuid.UUID) -> StageRead | None:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None

    @property
    def first_stage(self) -> StageRead | None:
        if not self.stages:
            return None
        return min(self.stages, key=lambda s: s.position)


class StageSummary(BaseModel):
    """Per-stage KPI row consumed by dashboards."""

    stage_id: uuid.UUID
    name: str
    position: int
    probability_percent: float | None = None
    is_won: bool = False
    is_lost: bool = False
    total_count: int = 0
    total_value: float = 0.0
    weighted_value: float = 0.0
    stagnant_count: int = 0
