"""Opaque product suggestions attached to opportunity line items."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ProductSuggestion(BaseModel):
    # Scoring payload belongs to the recommender; keep whatever it sends
    model_config = ConfigDict(extra="allow")

    product_id: str
    label: str | None = None
    score: float | None = None


class SuggestionFeedback(BaseModel):
    opportunity_id: uuid.UUID
    line_item_id: str
    product_id: str
    decision: Literal["accepted", "rejected"]
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
