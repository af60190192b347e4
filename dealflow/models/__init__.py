"""Dealflow models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin
from .location import Location
from .pipeline import Pipeline, PipelineStage
from .custom_field import PipelineFieldDefinition
from .opportunity import Opportunity
from .stage_transition import StageTransition

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "TenantMixin",
    "Location",
    "Pipeline",
    "PipelineStage",
    "PipelineFieldDefinition",
    "Opportunity",
    "StageTransition",
]
