"""Derived opportunity metrics: days in stage, stagnation, weighted value."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

SECONDS_PER_DAY = 86400.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(moment: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def days_in_stage(entered_stage_at: datetime | None, now: datetime | None = None) -> float:
    if entered_stage_at is None:
        return 0.0
    now = as_aware(now or utcnow())
    elapsed = (now - as_aware(entered_stage_at)).total_seconds() / SECONDS_PER_DAY
    return max(elapsed, 0.0)


def is_stagnant(days: float, stagnation_alert_days: int | None) -> bool:
    return stagnation_alert_days is not None and days > stagnation_alert_days


def weighted_value(value: float | None, probability_percent: float | None) -> float | None:
    if value is None or probability_percent is None:
        return None
    return value * probability_percent / 100


@dataclass(frozen=True)
class OpportunityMetrics:
    days_in_stage: float
    is_stagnant: bool
    weighted_value: float | None

    @property
    def whole_days(self) -> int:
        return int(self.days_in_stage)


def derive_metrics(opportunity, stage, now: datetime | None = None) -> OpportunityMetrics:
    """Compute the derived fields for an opportunity sitting in ``stage``.

    Works with ORM rows or read schemas alike; only attribute access is used.
    """
    days = days_in_stage(opportunity.entered_stage_at, now)
    return OpportunityMetrics(
        days_in_stage=days,
        is_stagnant=is_stagnant(days, stage.stagnation_alert_days),
        weighted_value=weighted_value(opportunity.monetary_value, stage.probability_percent),
    )
