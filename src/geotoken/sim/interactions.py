from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from geotoken.sim.grid import GridCoord

OUTCOME_PICKUP = "pickup"
OUTCOME_DROP = "drop"
OUTCOME_MERGE = "merge"
OUTCOME_NOTHING_TO_DO = "nothing_to_do"
OUTCOME_TOO_FAR = "too_far"
OUTCOME_INACTIVE = "inactive"

LEGAL_OUTCOMES = frozenset({OUTCOME_PICKUP, OUTCOME_DROP, OUTCOME_MERGE})


@dataclass(frozen=True)
class Transition:
    outcome: str
    held_token: int | None
    cell_token: int | None

    @property
    def is_legal(self) -> bool:
        return self.outcome in LEGAL_OUTCOMES


def evaluate_transition(held_token: int | None, cell_token: int | None) -> Transition:
    """Pickup/drop/merge table, evaluated in priority order."""
    if held_token is None and cell_token is not None:
        return Transition(OUTCOME_PICKUP, held_token=cell_token, cell_token=None)
    if held_token is not None and cell_token is None:
        return Transition(OUTCOME_DROP, held_token=None, cell_token=held_token)
    if held_token is not None and cell_token == held_token:
        return Transition(OUTCOME_MERGE, held_token=None, cell_token=held_token * 2)
    return Transition(OUTCOME_NOTHING_TO_DO, held_token=held_token, cell_token=cell_token)


@dataclass(frozen=True)
class InteractionResult:
    coord: GridCoord
    outcome: str
    held_before: int | None
    held_after: int | None
    cell_before: int | None
    cell_after: int | None
    goal_reached: bool = False

    @property
    def changed(self) -> bool:
        return self.outcome in LEGAL_OUTCOMES

    def to_dict(self) -> dict[str, Any]:
        return {
            "coord": self.coord.to_dict(),
            "outcome": self.outcome,
            "held_before": self.held_before,
            "held_after": self.held_after,
            "cell_before": self.cell_before,
            "cell_after": self.cell_after,
            "goal_reached": self.goal_reached,
        }

    @classmethod
    def rejected(cls, coord: GridCoord, outcome: str, *, held: int | None, cell: int | None) -> "InteractionResult":
        return cls(
            coord=coord,
            outcome=outcome,
            held_before=held,
            held_after=held,
            cell_before=cell,
            cell_after=cell,
        )
