import os
import subprocess
import sys

import pytest

from geotoken.sim.grid import GridCoord, iter_neighborhood
from geotoken.sim.rng import luck
from geotoken.sim.world import CellState, generate


def test_luck_is_stable_and_within_unit_interval() -> None:
    draws = [luck(GridCoord(i, j).to_key()) for i in range(-20, 20) for j in range(-20, 20)]

    assert all(0.0 <= draw < 1.0 for draw in draws)
    assert draws == [luck(GridCoord(i, j).to_key()) for i in range(-20, 20) for j in range(-20, 20)]


def test_luck_is_identical_in_a_fresh_interpreter() -> None:
    script = "from geotoken.sim.rng import luck; print(repr(luck('3,-7')))"
    completed = subprocess.run(
        [sys.executable, "-c", script],
        check=True,
        capture_output=True,
        text=True,
        env={**os.environ, "PYTHONPATH": os.pathsep.join(sys.path)},
    )

    assert float(completed.stdout.strip()) == luck("3,-7")


def test_generate_is_deterministic_per_coordinate() -> None:
    for coord in iter_neighborhood(GridCoord(0, 0), 10):
        assert generate(coord, spawn_probability=0.15) == generate(coord, spawn_probability=0.15)


def test_generated_cells_hold_one_or_nothing() -> None:
    states = [generate(coord, spawn_probability=0.15) for coord in iter_neighborhood(GridCoord(5, 5), 30)]

    assert {state.token_value for state in states} <= {None, 1}


def test_spawn_rate_tracks_probability() -> None:
    coords = list(iter_neighborhood(GridCoord(0, 0), 50))
    spawned = sum(1 for coord in coords if generate(coord, spawn_probability=0.15).token_value == 1)

    assert 0.12 < spawned / len(coords) < 0.18


def test_probability_extremes() -> None:
    coords = list(iter_neighborhood(GridCoord(-3, 9), 5))

    assert all(generate(coord, spawn_probability=1.0) == CellState(1) for coord in coords)
    assert all(generate(coord, spawn_probability=0.0) == CellState(None) for coord in coords)


@pytest.mark.parametrize("value", [0, -2, 3, 6, 1.0, True, "4"])
def test_cell_state_rejects_non_power_of_two_tokens(value: object) -> None:
    with pytest.raises(ValueError, match="power of two"):
        CellState(token_value=value)  # type: ignore[arg-type]
