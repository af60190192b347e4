"""Product suggestions attached to opportunity line items.

Scoring happens elsewhere. The inbox only keeps the opaque suggestion lists
it is handed and forwards accept/reject decisions to the collaborator that
produced them.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any, Protocol

from ..schemas.suggestion import ProductSuggestion, SuggestionFeedback
from .notices import NoticeBoard, NoticeCallback

logger = logging.getLogger(__name__)


class RecommendationFeedback(Protocol):
    async def record(self, feedback: SuggestionFeedback) -> None: ...


class SuggestionInbox:
    def __init__(
        self,
        feedback: RecommendationFeedback | None = None,
        on_notice: NoticeCallback | None = None,
    ):
        self._feedback = feedback
        self._pending: dict[tuple[uuid.UUID, str], list[ProductSuggestion]] = {}
        self.notices = NoticeBoard(on_notice)

    def attach(
        self,
        opportunity_id: uuid.UUID,
        line_item_id: str,
        suggestions: Iterable[ProductSuggestion | dict[str, Any]],
    ) -> list[ProductSuggestion]:
        """Replace the suggestion list shown for one line item."""
        items = [
            s if isinstance(s, ProductSuggestion) else ProductSuggestion.model_validate(s)
            for s in suggestions
        ]
        self._pending[(opportunity_id, line_item_id)] = items
        return list(items)

    def suggestions_for(self, opportunity_id: uuid.UUID, line_item_id: str) -> list[ProductSuggestion]:
        return list(self._pending.get((opportunity_id, line_item_id), []))

    async def accept(
        self, opportunity_id: uuid.UUID, line_item_id: str, product_id: str
    ) -> SuggestionFeedback | None:
        return await self._decide(opportunity_id, line_item_id, product_id, "accepted")

    async def reject(
        self, opportunity_id: uuid.UUID, line_item_id: str, product_id: str
    ) -> SuggestionFeedback | None:
        return await self._decide(opportunity_id, line_item_id, product_id, "rejected")

    async def _decide(
        self, opportunity_id: uuid.UUID, line_item_id: str, product_id: str, decision: str
    ) -> SuggestionFeedback | None:
        key = (opportunity_id, line_item_id)
        pending = self._pending.get(key, [])
        if not any(s.product_id == product_id for s in pending):
            return None

        event = SuggestionFeedback(
            opportunity_id=opportunity_id,
            line_item_id=line_item_id,
            product_id=product_id,
            decision=decision,
        )
        if self._feedback is not None:
            try:
                await self._feedback.record(event)
            except Exception as exc:
                logger.warning("Forwarding %s feedback for %s failed", decision, product_id, exc_info=True)
                self.notices.notify("warning", "Could not record your choice, try again", exc)
                return None

        remaining = [s for s in pending if s.product_id != product_id]
        if decision == "accepted":
            remaining = []
        if remaining:
            self._pending[key] = remaining
        else:
            self._pending.pop(key, None)
        return event
