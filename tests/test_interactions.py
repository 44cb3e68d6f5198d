from geotoken.content.io import SAVE_KEY, MemorySaveStore, deserialize
from geotoken.sim.core import GameConfig, GameController, GameState, Notification
from geotoken.sim.grid import GridCoord, cell_center
from geotoken.sim.interactions import (
    OUTCOME_DROP,
    OUTCOME_INACTIVE,
    OUTCOME_MERGE,
    OUTCOME_NOTHING_TO_DO,
    OUTCOME_PICKUP,
    OUTCOME_TOO_FAR,
    evaluate_transition,
)
from geotoken.sim.world import CellState


def _build_controller(spawn_probability: float) -> tuple[GameController, list[Notification], MemorySaveStore]:
    config = GameConfig(spawn_probability=spawn_probability, neighborhood_radius=5, interaction_radius=3, target_token=32)
    notifications: list[Notification] = []
    store = MemorySaveStore()
    controller = GameController(state=GameState.create(config), save_store=store, notify=notifications.append)
    center = cell_center(GridCoord(0, 0), origin=config.origin, tile_size=config.tile_size)
    controller.player.move_to(center.lat, center.lng)
    controller.start()
    return controller, notifications, store


def test_transition_table_priority_order() -> None:
    assert evaluate_transition(None, 4).outcome == OUTCOME_PICKUP
    assert evaluate_transition(4, None).outcome == OUTCOME_DROP
    merge = evaluate_transition(4, 4)
    assert (merge.outcome, merge.held_token, merge.cell_token) == (OUTCOME_MERGE, None, 8)
    assert evaluate_transition(4, 2).outcome == OUTCOME_NOTHING_TO_DO
    assert evaluate_transition(None, None).outcome == OUTCOME_NOTHING_TO_DO
    assert not evaluate_transition(None, None).is_legal


def test_pickup_from_generated_cell() -> None:
    controller, notifications, store = _build_controller(spawn_probability=1.0)

    result = controller.interact(GridCoord(0, 0))

    assert result.outcome == OUTCOME_PICKUP
    assert controller.player.held_token == 1
    assert controller.state.world.resolve(GridCoord(0, 0)) == CellState(None)
    assert controller.state.cells.get(GridCoord(0, 0)).token_value is None
    assert notifications == []
    player, overrides = deserialize(store.read(SAVE_KEY))
    assert player.held_token == 1
    assert overrides.get(GridCoord(0, 0)) == CellState(None)


def test_drop_into_empty_cell_two_steps_away() -> None:
    controller, _, _ = _build_controller(spawn_probability=0.0)
    controller.player.held_token = 1

    result = controller.interact(GridCoord(2, 1))

    assert result.outcome == OUTCOME_DROP
    assert controller.player.held_token is None
    assert controller.state.world.resolve(GridCoord(2, 1)) == CellState(1)


def test_merge_matching_tokens_doubles_cell() -> None:
    controller, notifications, _ = _build_controller(spawn_probability=1.0)

    controller.interact(GridCoord(0, 0))
    result = controller.interact(GridCoord(1, -1))

    assert result.outcome == OUTCOME_MERGE
    assert result.cell_after == 2
    assert controller.player.held_token is None
    assert controller.state.cells.get(GridCoord(1, -1)).token_value == 2
    assert not result.goal_reached
    assert notifications == []


def test_reaching_target_notifies_once_and_play_continues() -> None:
    controller, notifications, _ = _build_controller(spawn_probability=0.0)
    target = GridCoord(1, 1)
    controller.state.world.commit(target, CellState(1))
    controller.state.cells.refresh(target)

    value = 1
    while value < 32:
        controller.player.held_token = value
        result = controller.interact(target)
        assert result.outcome == OUTCOME_MERGE
        value *= 2

    assert controller.state.world.resolve(target) == CellState(32)
    assert [n.kind for n in notifications] == ["goal_reached"]
    assert notifications[0].coord == target

    follow_up = controller.interact(target)
    assert follow_up.outcome == OUTCOME_PICKUP
    assert controller.player.held_token == 32


def test_out_of_range_interaction_is_rejected() -> None:
    controller, notifications, store = _build_controller(spawn_probability=1.0)
    writes_before = store.write_count

    result = controller.interact(GridCoord(4, 0))

    assert result.outcome == OUTCOME_TOO_FAR
    assert not result.changed
    assert controller.player.held_token is None
    assert controller.state.world.resolve(GridCoord(4, 0)) == CellState(1)
    assert GridCoord(4, 0) not in controller.state.world.overrides
    assert [n.kind for n in notifications] == ["too_far"]
    assert notifications[0].message == "Too far to interact!"
    assert store.write_count == writes_before


def test_nothing_to_do_leaves_state_untouched() -> None:
    controller, notifications, store = _build_controller(spawn_probability=0.0)
    writes_before = store.write_count

    empty = controller.interact(GridCoord(0, 0))
    controller.player.held_token = 2
    controller.state.world.commit(GridCoord(0, 1), CellState(4))
    controller.state.cells.refresh(GridCoord(0, 1))
    mismatch = controller.interact(GridCoord(0, 1))

    assert empty.outcome == OUTCOME_NOTHING_TO_DO
    assert mismatch.outcome == OUTCOME_NOTHING_TO_DO
    assert controller.player.held_token == 2
    assert controller.state.world.resolve(GridCoord(0, 1)) == CellState(4)
    assert GridCoord(0, 0) not in controller.state.world.overrides
    assert [n.message for n in notifications] == ["Nothing to do here!", "Nothing to do here!"]
    assert store.write_count == writes_before


def test_inactive_cells_cannot_be_targeted() -> None:
    controller, notifications, _ = _build_controller(spawn_probability=1.0)

    result = controller.interact(GridCoord(40, 40))

    assert result.outcome == OUTCOME_INACTIVE
    assert GridCoord(40, 40) not in controller.state.world.overrides
    assert [n.kind for n in notifications] == ["inactive"]


def test_held_and_cell_tokens_stay_powers_of_two() -> None:
    controller, _, _ = _build_controller(spawn_probability=1.0)
    script = [GridCoord(0, 0), GridCoord(0, 1), GridCoord(0, 1), GridCoord(1, 0), GridCoord(1, 1), GridCoord(1, 1)]

    for coord in script:
        controller.interact(coord)
        held = controller.player.held_token
        assert held is None or held & (held - 1) == 0
        for _, state in controller.state.world.overrides.items():
            assert state.token_value is None or state.token_value & (state.token_value - 1) == 0
