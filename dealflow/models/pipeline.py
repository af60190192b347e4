"""Pipeline and PipelineStage models."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin


class Pipeline(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "pipeline"
    __table_args__ = (UniqueConstraint("location_id", "name", name="uq_pipeline_location_name"),)

    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(String(500), default=None)
    color: Mapped[str | None] = mapped_column(String(20), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    # Relationships
    location: Mapped["Location"] = relationship(back_populates="pipelines")  # noqa: F821
    stages: Mapped[list["PipelineStage"]] = relationship(
        back_populates="pipeline", cascade="all, delete-orphan",
        order_by="PipelineStage.position"
    )
    field_definitions: Mapped[list["PipelineFieldDefinition"]] = relationship(  # noqa: F821
        back_populates="pipeline", cascade="all, delete-orphan",
        order_by="PipelineFieldDefinition.position"
    )
    opportunities: Mapped[list["Opportunity"]] = relationship(  # noqa: F821
        back_populates="pipeline", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Pipeline {self.name!r}>"


class PipelineStage(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "pipeline_stage"
    __table_args__ = (
        UniqueConstraint("pipeline_id", "position", name="uq_stage_pipeline_position"),
    )

    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("pipeline.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(200))
    color: Mapped[str | None] = mapped_column(String(20), default=None)
    position: Mapped[int] = mapped_column(Integer, default=0)
    probability_percent: Mapped[float | None] = mapped_column(Float, default=None)
    is_won: Mapped[bool] = mapped_column(Boolean, default=False)
    is_lost: Mapped[bool] = mapped_column(Boolean, default=False)
    stagnation_alert_days: Mapped[int | None] = mapped_column(Integer, default=None)

    # Relationships
    pipeline: Mapped["Pipeline"] = relationship(back_populates="stages")
    opportunities: Mapped[list["Opportunity"]] = relationship(  # noqa: F821
        back_populates="stage"
    )

    @property
    def is_terminal(self) -> bool:
        return bool(self.is_won or self.is_lost)

    def __repr__(self) -> str:
        return f"<PipelineStage {self.name!r}>"
