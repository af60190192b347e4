"""Kanban board controller.

Every stage of a pipeline is a column with its own pagination cursor. Drops
coming from whatever drag-and-drop adapter the UI uses arrive through
``on_reorder``; a cross-column drop is applied optimistically, sent as one
move command and then either reconciled with the server's entity or rolled
back.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from ..config import settings
from ..errors import DealflowError, NotFound
from ..schemas.opportunity import OpportunityCreate, OpportunityRead
from ..schemas.pipeline import PipelineDetail, StageRead
from .gateway import PipelineGateway
from .metrics import OpportunityMetrics, derive_metrics
from .notices import NoticeBoard, NoticeCallback

logger = logging.getLogger(__name__)


@dataclass
class Column:
    stage: StageRead
    items: list[OpportunityRead] = field(default_factory=list)
    # Whole-stage totals as reported by the server, not derived from items
    total_count: int = 0
    total_value: float = 0.0
    loading: bool = False
    error: str | None = None

    @property
    def stage_id(self) -> uuid.UUID:
        return self.stage.id

    @property
    def has_more(self) -> bool:
        return self.total_count > len(self.items)

    @property
    def allows_quick_add(self) -> bool:
        return not self.stage.is_terminal

    def index_of(self, opp_id: uuid.UUID) -> int | None:
        for i, item in enumerate(self.items):
            if item.id == opp_id:
                return i
        return None

    def _insert(self, opp: OpportunityRead, index: int) -> None:
        index = max(0, min(index, len(self.items)))
        self.items.insert(index, opp)

    def _pop(self, opp_id: uuid.UUID) -> tuple[int, OpportunityRead] | None:
        index = self.index_of(opp_id)
        if index is None:
            return None
        return index, self.items.pop(index)


@dataclass(frozen=True)
class DropEvent:
    opportunity_id: uuid.UUID
    source_stage_id: uuid.UUID
    # None when the card was dropped outside every column
    dest_stage_id: uuid.UUID | None
    source_index: int
    dest_index: int


class MoveStatus(str, Enum):
    IGNORED = "ignored"
    REORDERED = "reordered"
    BUSY = "busy"
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"
    STALE = "stale"


@dataclass(frozen=True)
class MoveOutcome:
    status: MoveStatus
    opportunity: OpportunityRead | None = None
    error: Exception | None = None


class KanbanBoardController:
    def __init__(
        self,
        gateway: PipelineGateway,
        pipeline_id: uuid.UUID,
        *,
        page_size: int | None = None,
        load_timeout: float | None = None,
        move_timeout: float | None = None,
        on_notice: NoticeCallback | None = None,
    ):
        self.gateway = gateway
        self.pipeline_id = pipeline_id
        self.page_size = min(page_size or settings.board_page_size, settings.board_max_page_size)
        self.load_timeout = load_timeout or settings.load_timeout_seconds
        self.move_timeout = move_timeout or settings.move_timeout_seconds
        self.pipeline: PipelineDetail | None = None
        self.columns: dict[uuid.UUID, Column] = {}
        self.loading = False
        self.notices = NoticeBoard(on_notice)
        self._in_flight: set[uuid.UUID] = set()
        self._generation: dict[uuid.UUID, int] = {}
        self._versions: dict[uuid.UUID, int] = {}
        self._latest: dict[uuid.UUID, OpportunityRead] = {}

    # ── Loading ────────────────────────────────────────────────────────────

    async def load(self) -> bool:
        """Load the pipeline and the first page of every column."""
        self.loading = True
        try:
            try:
                pipeline = await asyncio.wait_for(
                    self.gateway.get_pipeline_with_stages(self.pipeline_id), self.load_timeout
                )
            except (DealflowError, asyncio.TimeoutError) as exc:
                logger.warning("Loading pipeline %s failed", self.pipeline_id, exc_info=True)
                self.notices.notify("error", "Could not load the pipeline", exc)
                return False
            self.pipeline = pipeline
            self.columns = {
                stage.id: Column(stage=stage)
                for stage in sorted(pipeline.stages, key=lambda s: s.position)
            }
            results = await asyncio.gather(
                *(self._fetch_page(column, reset=True) for column in self.columns.values())
            )
            return all(results)
        finally:
            self.loading = False

    async def load_more(self, stage_id: uuid.UUID) -> bool:
        """Append the next page of one column. Other columns are untouched."""
        column = self.columns.get(stage_id)
        if column is None or column.loading or not column.has_more:
            return False
        return await self._fetch_page(column)

    async def load_more_many(self, stage_ids: Iterable[uuid.UUID]) -> list[bool]:
        return list(await asyncio.gather(*(self.load_more(s) for s in stage_ids)))

    async def _fetch_page(self, column: Column, reset: bool = False) -> bool:
        column.loading = True
        offset = 0 if reset else len(column.items)
        try:
            page = await asyncio.wait_for(
                self.gateway.list_opportunities_page(column.stage_id, offset, self.page_size),
                self.load_timeout,
            )
        except (DealflowError, asyncio.TimeoutError) as exc:
            logger.warning("Loading stage %s failed", column.stage_id, exc_info=True)
            column.error = f"Could not load {column.stage.name}"
            self.notices.notify("error", column.error, exc)
            return False
        finally:
            column.loading = False

        column.error = None
        if reset:
            column.items = []
        for item in page.items:
            self._observe(item)
            index = column.index_of(item.id)
            if index is None:
                column.items.append(item)
            elif item.version >= column.items[index].version:
                column.items[index] = item
        column.total_count = page.total_count
        column.total_value = page.total_value
        return True

    def _observe(self, opp: OpportunityRead) -> None:
        """Record a server state; a newer version invalidates pending responses."""
        if opp.version > self._versions.get(opp.id, 0):
            if opp.id in self._versions:
                self._generation[opp.id] = self._generation.get(opp.id, 0) + 1
            self._versions[opp.id] = opp.version
            self._latest[opp.id] = opp

    # ── Queries ────────────────────────────────────────────────────────────

    def column_for(self, opp_id: uuid.UUID) -> Column | None:
        for column in self.columns.values():
            if column.index_of(opp_id) is not None:
                return column
        return None

    def is_busy(self, opp_id: uuid.UUID) -> bool:
        return opp_id in self._in_flight

    def metrics(self, opp: OpportunityRead) -> OpportunityMetrics | None:
        column = self.columns.get(opp.stage_id)
        if column is None:
            return None
        return derive_metrics(opp, column.stage)

    async def open_details(self, opp_id: uuid.UUID) -> OpportunityRead | None:
        """Fresh copy of an opportunity, or None when it no longer exists."""
        try:
            opp = await asyncio.wait_for(self.gateway.get_opportunity(opp_id), self.load_timeout)
        except NotFound:
            logger.info("Opportunity %s is gone", opp_id)
            column = self.column_for(opp_id)
            if column is not None and not self.is_busy(opp_id):
                column._pop(opp_id)
                column.total_count = max(column.total_count - 1, 0)
            return None
        except (DealflowError, asyncio.TimeoutError) as exc:
            logger.warning("Loading opportunity %s failed", opp_id, exc_info=True)
            self.notices.notify("error", "Could not load the opportunity", exc)
            return None
        self._observe(opp)
        return opp

    # ── Quick add ──────────────────────────────────────────────────────────

    async def quick_add(
        self, stage_id: uuid.UUID, name: str, monetary_value: float | None = None
    ) -> OpportunityRead | None:
        column = self.columns.get(stage_id)
        if column is None or not column.allows_quick_add:
            return None
        payload = OpportunityCreate(
            name=name, pipeline_id=self.pipeline_id, stage_id=stage_id,
            monetary_value=monetary_value,
        )
        try:
            opp = await asyncio.wait_for(self.gateway.create_opportunity(payload), self.move_timeout)
        except (DealflowError, asyncio.TimeoutError) as exc:
            logger.warning("Quick add in stage %s failed", stage_id, exc_info=True)
            self.notices.notify("error", f"Could not add {name!r}", exc)
            return None
        self._observe(opp)
        column._insert(opp, 0)
        column.total_count += 1
        column.total_value += opp.monetary_value or 0
        return opp

    # ── Drag and drop ──────────────────────────────────────────────────────

    async def handle_drop(self, event: DropEvent) -> MoveOutcome:
        return await self.on_reorder(
            event.source_stage_id,
            event.dest_stage_id,
            event.opportunity_id,
            event.source_index,
            event.dest_index,
        )

    async def on_reorder(
        self,
        source_stage_id: uuid.UUID,
        dest_stage_id: uuid.UUID | None,
        opportunity_id: uuid.UUID,
        source_index: int,
        dest_index: int,
    ) -> MoveOutcome:
        if dest_stage_id is None:
            return MoveOutcome(MoveStatus.IGNORED)

        source = self.columns.get(source_stage_id)
        dest = self.columns.get(dest_stage_id)
        if source is None or dest is None or source.index_of(opportunity_id) is None:
            logger.debug("Drop of %s ignored: unknown column or card", opportunity_id)
            return MoveOutcome(MoveStatus.IGNORED)

        if source is dest:
            if source_index == dest_index:
                return MoveOutcome(MoveStatus.IGNORED)
            # In-column order is local only
            _, opp = source._pop(opportunity_id)
            source._insert(opp, dest_index)
            return MoveOutcome(MoveStatus.REORDERED, opp)

        if self.is_busy(opportunity_id):
            logger.debug("Drop of %s ignored: move already in flight", opportunity_id)
            return MoveOutcome(MoveStatus.BUSY)

        return await self._move(source, dest, opportunity_id, dest_index)

    async def _move(
        self, source: Column, dest: Column, opp_id: uuid.UUID, dest_index: int
    ) -> MoveOutcome:
        original_index, original = source._pop(opp_id)
        value = original.monetary_value or 0
        dest._insert(original.model_copy(update={"stage_id": dest.stage_id}), dest_index)
        source.total_count -= 1
        source.total_value -= value
        dest.total_count += 1
        dest.total_value += value

        generation = self._generation.get(opp_id, 0) + 1
        self._generation[opp_id] = generation
        self._in_flight.add(opp_id)
        try:
            result = await asyncio.wait_for(
                self.gateway.move_opportunity(opp_id, dest.stage_id, expected_version=original.version),
                self.move_timeout,
            )
        except (DealflowError, asyncio.TimeoutError) as exc:
            self._rollback(source, dest, original, original_index)
            if self._generation.get(opp_id) != generation:
                # A newer server copy landed meanwhile and replaces the pre-move card
                newer = self._latest[opp_id]
                self._reconcile(newer, value)
                original = newer
            logger.warning(
                "Move of %s to stage %s failed; rolled back", opp_id, dest.stage_id, exc_info=True
            )
            self.notices.notify(
                "warning", f"Could not move {original.name!r} to {dest.stage.name}", exc
            )
            return MoveOutcome(MoveStatus.ROLLED_BACK, original, exc)
        finally:
            self._in_flight.discard(opp_id)

        if result.version < self._versions.get(opp_id, 0):
            logger.info("Dropping stale move response for opportunity %s", opp_id)
            newer = self._latest[opp_id]
            self._reconcile(newer, value)
            return MoveOutcome(MoveStatus.STALE, newer)

        self._versions[opp_id] = result.version
        self._latest[opp_id] = result
        self._reconcile(result, value)
        logger.info("Moved opportunity %s to stage %s", opp_id, result.stage_id)
        return MoveOutcome(MoveStatus.APPLIED, result)

    def _rollback(
        self, source: Column, dest: Column, original: OpportunityRead, original_index: int
    ) -> None:
        value = original.monetary_value or 0
        if dest._pop(original.id) is not None:
            dest.total_count -= 1
            dest.total_value -= value
        source._insert(original, original_index)
        source.total_count += 1
        source.total_value += value

    def _reconcile(self, opp: OpportunityRead, optimistic_value: float) -> None:
        """Make column membership match the server's entity."""
        holder = self.column_for(opp.id)
        index = 0
        if holder is not None:
            index, _ = holder._pop(opp.id)
            if holder.stage_id != opp.stage_id:
                holder.total_count -= 1
                holder.total_value -= optimistic_value
        target = self.columns.get(opp.stage_id)
        if target is None:
            return
        target._insert(opp, index)
        if holder is not target:
            target.total_count += 1
            target.total_value += opp.monetary_value or 0
        else:
            target.total_value += (opp.monetary_value or 0) - optimistic_value
