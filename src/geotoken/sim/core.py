from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from geotoken.content.io import SAVE_KEY, SaveStore, load_game, save_game
from geotoken.sim.cells import ActiveCellCache, CellRenderer
from geotoken.sim.grid import GeoBounds, GridCoord, LatLng, chebyshev_distance, to_cell
from geotoken.sim.interactions import (
    OUTCOME_INACTIVE,
    OUTCOME_MERGE,
    OUTCOME_TOO_FAR,
    InteractionResult,
    evaluate_transition,
)
from geotoken.sim.movement import MovementSource, MovementUnavailable
from geotoken.sim.player import PlayerState
from geotoken.sim.world import CellState, OverrideStore, WorldStore

logger = logging.getLogger(__name__)

NOTIFY_TOO_FAR = "too_far"
NOTIFY_NOTHING_TO_DO = "nothing_to_do"
NOTIFY_INACTIVE = "inactive"
NOTIFY_GOAL_REACHED = "goal_reached"
NOTIFY_MOVEMENT_UNAVAILABLE = "movement_unavailable"
NOTIFY_INVALID_POSITION = "invalid_position"

MESSAGES = {
    NOTIFY_TOO_FAR: "Too far to interact!",
    NOTIFY_NOTHING_TO_DO: "Nothing to do here!",
    NOTIFY_INACTIVE: "That cell is not on the map right now.",
    NOTIFY_GOAL_REACHED: "Congratulations! You created a high-value token!",
    NOTIFY_INVALID_POSITION: "Ignored an invalid position fix.",
}


@dataclass(frozen=True)
class GameConfig:
    """Startup constants; never reconfigured while a game runs."""

    origin_lat: float = 36.997936938057016
    origin_lng: float = -122.05703507501151
    tile_size: float = 0.0001
    interaction_radius: int = 3
    target_token: int = 32
    neighborhood_radius: int = 48
    spawn_probability: float = 0.15
    viewport_padding: int = 1

    def __post_init__(self) -> None:
        if self.tile_size <= 0:
            raise ValueError("tile_size must be > 0")
        for name in ("interaction_radius", "neighborhood_radius", "viewport_padding"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer")
        if isinstance(self.target_token, bool) or not isinstance(self.target_token, int) or self.target_token <= 0:
            raise ValueError("target_token must be a positive integer")
        if not 0.0 <= self.spawn_probability <= 1.0:
            raise ValueError("spawn_probability must be within [0.0, 1.0]")

    @property
    def origin(self) -> LatLng:
        return LatLng(self.origin_lat, self.origin_lng)

    def to_cell(self, lat: float, lng: float) -> GridCoord:
        return to_cell(lat, lng, origin=self.origin, tile_size=self.tile_size)


@dataclass(frozen=True)
class Notification:
    kind: str
    message: str
    coord: GridCoord | None = None


@dataclass
class GameState:
    config: GameConfig
    player: PlayerState
    world: WorldStore
    cells: ActiveCellCache

    @classmethod
    def create(
        cls,
        config: GameConfig,
        *,
        player: PlayerState | None = None,
        overrides: OverrideStore | None = None,
        renderer: CellRenderer | None = None,
    ) -> "GameState":
        world = WorldStore(spawn_probability=config.spawn_probability, overrides=overrides)
        cells = ActiveCellCache(
            world,
            origin=config.origin,
            tile_size=config.tile_size,
            viewport_padding=config.viewport_padding,
            renderer=renderer,
        )
        return cls(
            config=config,
            player=player if player is not None else PlayerState.fresh(config.origin),
            world=world,
            cells=cells,
        )

    @property
    def player_cell(self) -> GridCoord:
        return self.config.to_cell(self.player.lat, self.player.lng)


MovementFactory = Callable[[bool], MovementSource]


@dataclass
class GameController:
    """Owns the game state and runs every event handler to completion."""

    state: GameState
    movement_factory: MovementFactory | None = None
    save_store: SaveStore | None = None
    notify: Callable[[Notification], None] | None = None
    save_key: str = SAVE_KEY
    movement: MovementSource | None = field(default=None, init=False)
    last_notification: Notification | None = field(default=None, init=False)
    _last_view_bounds: GeoBounds | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_store(
        cls,
        config: GameConfig,
        save_store: SaveStore,
        *,
        movement_factory: MovementFactory | None = None,
        renderer: CellRenderer | None = None,
        notify: Callable[[Notification], None] | None = None,
        use_geolocation: bool = True,
        save_key: str = SAVE_KEY,
    ) -> "GameController":
        player, overrides, loaded = load_game(
            save_store,
            origin=config.origin,
            key=save_key,
            use_geolocation=use_geolocation,
        )
        if loaded:
            logger.info("loaded save %r with %d overrides", save_key, len(overrides))
        state = GameState.create(config, player=player, overrides=overrides, renderer=renderer)
        return cls(
            state=state,
            movement_factory=movement_factory,
            save_store=save_store,
            notify=notify,
            save_key=save_key,
        )

    @property
    def config(self) -> GameConfig:
        return self.state.config

    @property
    def player(self) -> PlayerState:
        return self.state.player

    def start(self) -> None:
        """Spawn the initial neighborhood and start the configured movement source."""
        self.refresh_neighborhood()
        if self.movement_factory is not None:
            self.switch_movement_mode(self.player.use_geolocation)

    def shutdown(self) -> None:
        if self.movement is not None:
            self.movement.stop()
            self.movement = None
        self.persist()

    def persist(self) -> None:
        if self.save_store is None:
            return
        try:
            save_game(self.save_store, self.player, self.state.world.overrides, key=self.save_key)
        except OSError as exc:
            logger.error("failed to write save %r: %s", self.save_key, exc)

    def load_overrides(self, player: PlayerState, overrides: OverrideStore) -> None:
        """Replace (never merge) the in-memory state with a loaded session."""
        self.state.player = player
        self.state.world.replace_overrides(overrides)
        self.state.cells.clear()
        if self._last_view_bounds is not None:
            self.state.cells.reconcile_viewport(self._last_view_bounds)
        self.refresh_neighborhood()

    def handle_move(self, lat: float, lng: float, authoritative: bool) -> None:
        if not (math.isfinite(lat) and math.isfinite(lng)):
            logger.warning("ignoring non-finite position fix (%r, %r)", lat, lng)
            self._emit(NOTIFY_INVALID_POSITION)
            return
        self.player.move_to(lat, lng)
        if authoritative:
            self.persist()
        self.refresh_neighborhood()

    def handle_view_settled(self, view_bounds: GeoBounds) -> None:
        self._last_view_bounds = view_bounds
        self.state.cells.reconcile_viewport(view_bounds)

    def refresh_neighborhood(self) -> None:
        self.state.cells.reconcile_neighborhood(self.state.player_cell, self.config.neighborhood_radius)

    def interact(self, coord: GridCoord) -> InteractionResult:
        held = self.player.held_token
        cell = self.state.cells.get(coord)
        if cell is None:
            self._emit(NOTIFY_INACTIVE, coord=coord)
            return InteractionResult.rejected(coord, OUTCOME_INACTIVE, held=held, cell=None)

        if chebyshev_distance(coord, self.state.player_cell) > self.config.interaction_radius:
            self._emit(NOTIFY_TOO_FAR, coord=coord)
            return InteractionResult.rejected(coord, OUTCOME_TOO_FAR, held=held, cell=cell.token_value)

        cell_before = cell.token_value
        transition = evaluate_transition(held, cell_before)
        if not transition.is_legal:
            self._emit(NOTIFY_NOTHING_TO_DO, coord=coord)
            return InteractionResult.rejected(coord, transition.outcome, held=held, cell=cell_before)

        self.state.world.commit(coord, CellState(token_value=transition.cell_token))
        self.player.held_token = transition.held_token
        self.state.cells.refresh(coord)
        self.persist()

        goal_reached = (
            transition.outcome == OUTCOME_MERGE
            and transition.cell_token is not None
            and transition.cell_token >= self.config.target_token
        )
        if goal_reached:
            self._emit(NOTIFY_GOAL_REACHED, coord=coord)
        return InteractionResult(
            coord=coord,
            outcome=transition.outcome,
            held_before=held,
            held_after=transition.held_token,
            cell_before=cell_before,
            cell_after=transition.cell_token,
            goal_reached=goal_reached,
        )

    def switch_movement_mode(self, use_geolocation: bool) -> MovementSource | None:
        """Stop the current source, then construct and start its replacement."""
        if self.movement is not None:
            self.movement.stop()
            self.movement = None

        self.player.use_geolocation = use_geolocation
        if self.movement_factory is None:
            return None

        source = self.movement_factory(use_geolocation)
        source.on_move(self.handle_move)
        try:
            source.start()
        except MovementUnavailable as exc:
            source.stop()
            logger.warning("movement source %s unavailable: %s", source.name, exc)
            self._emit(NOTIFY_MOVEMENT_UNAVAILABLE, message=str(exc))
        self.movement = source
        self.persist()
        return source

    def toggle_movement_mode(self) -> MovementSource | None:
        return self.switch_movement_mode(not self.player.use_geolocation)

    def reset(self) -> None:
        if self.save_store is not None:
            try:
                self.save_store.delete(self.save_key)
            except OSError as exc:
                logger.error("failed to delete save %r: %s", self.save_key, exc)
        self.state.cells.clear()
        self.state.world.reset()
        self.state.player = PlayerState.fresh(self.config.origin, use_geolocation=self.player.use_geolocation)
        if self._last_view_bounds is not None:
            self.state.cells.reconcile_viewport(self._last_view_bounds)
        self.refresh_neighborhood()

    def status_text(self) -> str:
        held = self.player.held_token if self.player.held_token is not None else "none"
        return f"Holding: {held} - Player: {self.player.lat:.6f}, {self.player.lng:.6f}"

    def snapshot(self) -> dict[str, Any]:
        return {
            "player": {
                "lat": self.player.lat,
                "lng": self.player.lng,
                "held_token": self.player.held_token,
                "use_geolocation": self.player.use_geolocation,
                "cell": self.state.player_cell.to_dict(),
            },
            "overrides": self.state.world.overrides.to_dict(),
            "active_cells": len(self.state.cells),
        }

    def _emit(self, kind: str, *, coord: GridCoord | None = None, message: str | None = None) -> None:
        notification = Notification(kind=kind, message=message or MESSAGES.get(kind, kind), coord=coord)
        self.last_notification = notification
        if self.notify is not None:
            self.notify(notification)
