"""Per-pipeline custom field definitions."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin


class PipelineFieldDefinition(UUIDMixin, TimestampMixin, Base):
    """Defines one extra attribute stored in Opportunity.custom_fields under `name`."""

    __tablename__ = "pipeline_field_definition"
    __table_args__ = (
        UniqueConstraint("pipeline_id", "name", name="uq_field_pipeline_name"),
    )

    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("pipeline.id", ondelete="CASCADE"), index=True
    )
    # Null means the field applies to every stage
    stage_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("pipeline_stage.id", ondelete="CASCADE"), default=None
    )
    name: Mapped[str] = mapped_column(String(200))
    label: Mapped[str] = mapped_column(String(200))
    field_type: Mapped[str] = mapped_column(String(30))
    required: Mapped[bool] = mapped_column(Boolean, default=False)
    options_json: Mapped[list | None] = mapped_column(JSON, default=None)
    validation_json: Mapped[dict | None] = mapped_column(JSON, default=None)
    placeholder: Mapped[str | None] = mapped_column(String(200), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    group_name: Mapped[str | None] = mapped_column(String(100), default=None)
    width: Mapped[str] = mapped_column(String(10), default="full")  # full, half
    position: Mapped[int] = mapped_column(Integer, default=0)
    visible_in_kanban: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    pipeline: Mapped["Pipeline"] = relationship(back_populates="field_definitions")  # noqa: F821

    def __repr__(self) -> str:
        return f"<PipelineFieldDefinition {self.name!r}>"
