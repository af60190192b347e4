"""Stage transition policy.

Transitions are unconstrained by default: any stage to any other stage of
the same pipeline. The policy object makes that choice explicit so it can
be narrowed to an allow-list of (from, to) pairs without touching callers.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from ..errors import TransitionNotAllowed

ANY = "any"


@dataclass(frozen=True)
class TransitionPolicy:
    mode: str = ANY
    # Pairs of stage names, case-insensitive
    allowed: frozenset[tuple[str, str]] = field(default_factory=frozenset)

    @classmethod
    def from_config(cls, value: str | None) -> "TransitionPolicy":
        """Parse ``"any"`` or ``"Lead>Proposal, Proposal>Won"``."""
        if not value or value.strip().lower() == ANY:
            return cls()
        pairs = set()
        for item in value.split(","):
            if ">" not in item:
                continue
            source, dest = item.split(">", 1)
            if source.strip() and dest.strip():
                pairs.add((source.strip().casefold(), dest.strip().casefold()))
        return cls(mode="pairs", allowed=frozenset(pairs))

    @classmethod
    def only(cls, pairs: Iterable[tuple[str, str]]) -> "TransitionPolicy":
        return cls(
            mode="pairs",
            allowed=frozenset((a.casefold(), b.casefold()) for a, b in pairs),
        )

    def allows(self, from_stage_name: str, to_stage_name: str) -> bool:
        if self.mode == ANY:
            return True
        return (from_stage_name.casefold(), to_stage_name.casefold()) in self.allowed


def check_transition(policy: TransitionPolicy, from_stage, to_stage) -> None:
    """Raise TransitionNotAllowed unless ``from_stage -> to_stage`` is permitted.

    Both stages must belong to the same pipeline regardless of policy.
    """
    if from_stage.pipeline_id != to_stage.pipeline_id:
        raise TransitionNotAllowed(
            f"Stage {to_stage.name!r} belongs to a different pipeline"
        )
    if from_stage.id == to_stage.id:
        return
    if not policy.allows(from_stage.name, to_stage.name):
        raise TransitionNotAllowed(
            f"Moving from {from_stage.name!r} to {to_stage.name!r} is not allowed"
        )
