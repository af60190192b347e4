"""Append-only stage transition history."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TenantMixin


class StageTransition(UUIDMixin, TenantMixin, Base):
    __tablename__ = "stage_transition"

    opportunity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("opportunity.id", ondelete="CASCADE"), index=True
    )
    from_stage_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    to_stage_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    transitioned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    days_in_previous_stage: Mapped[float | None] = mapped_column(Float, default=None)

    opportunity: Mapped["Opportunity"] = relationship(back_populates="transitions")  # noqa: F821

    def __repr__(self) -> str:
        return f"<StageTransition {self.from_stage_id} -> {self.to_stage_id}>"
