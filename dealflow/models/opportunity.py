"""Opportunity model - deals owned by exactly one pipeline stage."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin


class Opportunity(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "opportunity"

    name: Mapped[str] = mapped_column(String(300))
    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("pipeline.id", ondelete="CASCADE"), index=True
    )
    stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("pipeline_stage.id", ondelete="RESTRICT"), index=True
    )
    monetary_value: Mapped[float | None] = mapped_column(Float, default=None)
    # value * stage.probability_percent / 100, rewritten on every value or stage change
    weighted_value: Mapped[float | None] = mapped_column(Float, default=None)
    expected_close_date: Mapped[date | None] = mapped_column(Date, default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    custom_fields: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(20), default="open")  # open, won, lost
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    entered_stage_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, default=1)

    # Relationships
    pipeline: Mapped["Pipeline"] = relationship(back_populates="opportunities")  # noqa: F821
    stage: Mapped["PipelineStage"] = relationship(back_populates="opportunities")  # noqa: F821
    transitions: Mapped[list["StageTransition"]] = relationship(  # noqa: F821
        back_populates="opportunity", cascade="all, delete-orphan",
        order_by="StageTransition.transitioned_at"
    )

    def __repr__(self) -> str:
        return f"<Opportunity {self.name!r}>"
