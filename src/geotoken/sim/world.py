from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from geotoken.sim.grid import GridCoord
from geotoken.sim.rng import luck

INITIAL_TOKEN_VALUE = 1


def is_power_of_two(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value > 0 and (value & (value - 1)) == 0


def require_token(value: Any, *, field_name: str) -> int | None:
    if value is None:
        return None
    if not is_power_of_two(value):
        raise ValueError(f"{field_name} must be null or a positive power of two")
    return value


@dataclass(frozen=True)
class CellState:
    token_value: int | None = None

    def __post_init__(self) -> None:
        require_token(self.token_value, field_name="token_value")

    @property
    def is_empty(self) -> bool:
        return self.token_value is None

    def to_dict(self) -> dict[str, Any]:
        return {"tokenValue": self.token_value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CellState":
        if not isinstance(data, dict) or "tokenValue" not in data:
            raise ValueError("cell state must be an object with tokenValue")
        return cls(token_value=data["tokenValue"])


EMPTY_CELL = CellState()


def generate(coord: GridCoord, *, spawn_probability: float) -> CellState:
    """Default content of a never-touched cell, a pure function of the coordinate."""
    if luck(coord.to_key()) < spawn_probability:
        return CellState(token_value=INITIAL_TOKEN_VALUE)
    return EMPTY_CELL


class OverrideStore:
    """Sparse record of every cell the player has changed."""

    def __init__(self, cells: dict[GridCoord, CellState] | None = None) -> None:
        self._cells: dict[GridCoord, CellState] = dict(cells or {})

    def get(self, coord: GridCoord) -> CellState | None:
        return self._cells.get(coord)

    def set(self, coord: GridCoord, state: CellState) -> None:
        self._cells[coord] = state

    def clear(self) -> None:
        self._cells.clear()

    def items(self) -> Iterator[tuple[GridCoord, CellState]]:
        return iter(self._cells.items())

    def __contains__(self, coord: object) -> bool:
        return coord in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OverrideStore):
            return NotImplemented
        return self._cells == other._cells

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {coord.to_key(): self._cells[coord].to_dict() for coord in sorted(self._cells)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OverrideStore":
        if not isinstance(data, dict):
            raise ValueError("overrides must be an object")
        cells: dict[GridCoord, CellState] = {}
        for key, raw in data.items():
            cells[GridCoord.from_key(key)] = CellState.from_dict(raw)
        return cls(cells)


class WorldStore:
    """Generator plus overrides; overrides shadow the generator once written."""

    def __init__(self, *, spawn_probability: float, overrides: OverrideStore | None = None) -> None:
        if not 0.0 <= spawn_probability <= 1.0:
            raise ValueError("spawn_probability must be within [0.0, 1.0]")
        self.spawn_probability = spawn_probability
        self.overrides = overrides if overrides is not None else OverrideStore()

    def resolve(self, coord: GridCoord) -> CellState:
        override = self.overrides.get(coord)
        if override is not None:
            return override
        return generate(coord, spawn_probability=self.spawn_probability)

    def commit(self, coord: GridCoord, state: CellState) -> None:
        self.overrides.set(coord, state)

    def is_touched(self, coord: GridCoord) -> bool:
        return coord in self.overrides

    def replace_overrides(self, overrides: OverrideStore) -> None:
        self.overrides = overrides

    def reset(self) -> None:
        self.overrides = OverrideStore()
