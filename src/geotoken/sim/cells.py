from __future__ import annotations

import logging
from dataclasses import dataclass

from geotoken.sim.grid import (
    CellRect,
    GeoBounds,
    GridCoord,
    LatLng,
    cell_bounds,
    covering_rect,
    neighborhood_rect,
)
from geotoken.sim.world import CellState, WorldStore

logger = logging.getLogger(__name__)


@dataclass
class ActiveCell:
    """Live, rendering-bound view of one cell; always re-derivable from the world."""

    coord: GridCoord
    state: CellState
    bounds: GeoBounds

    @property
    def token_value(self) -> int | None:
        return self.state.token_value

    def tooltip(self) -> str | None:
        if self.state.token_value is None:
            return None
        return f"Token: {self.state.token_value}"

    def describe(self) -> str:
        label = f"Cell [{self.coord.i},{self.coord.j}]"
        if self.state.token_value is None:
            return f"{label} is empty."
        return f"{label} has token value {self.state.token_value}."


class CellRenderer:
    """Rendering collaborator hooks.

    The cache calls these synchronously; implementations own whatever visual
    handle they attach to a cell and must release it in ``on_cell_destroyed``.
    """

    def on_cell_spawned(self, cell: ActiveCell) -> None:
        """Called once when a coordinate becomes live."""

    def on_cell_updated(self, cell: ActiveCell) -> None:
        """Called after a live cell's state changed through a commit."""

    def on_cell_destroyed(self, cell: ActiveCell) -> None:
        """Called when a live cell leaves the active window."""


class ActiveCellCache:
    def __init__(
        self,
        world: WorldStore,
        *,
        origin: LatLng,
        tile_size: float,
        viewport_padding: int,
        renderer: CellRenderer | None = None,
    ) -> None:
        self.world = world
        self.origin = origin
        self.tile_size = tile_size
        self.viewport_padding = viewport_padding
        self.renderer = renderer if renderer is not None else CellRenderer()
        self._cells: dict[GridCoord, ActiveCell] = {}
        self._view_rect: CellRect | None = None
        self._neighborhood_rect: CellRect | None = None

    def __contains__(self, coord: object) -> bool:
        return coord in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def get(self, coord: GridCoord) -> ActiveCell | None:
        return self._cells.get(coord)

    def cells(self) -> list[ActiveCell]:
        return [self._cells[coord] for coord in sorted(self._cells)]

    @property
    def view_rect(self) -> CellRect | None:
        return self._view_rect

    @property
    def neighborhood(self) -> CellRect | None:
        return self._neighborhood_rect

    def spawn(self, coord: GridCoord) -> ActiveCell:
        existing = self._cells.get(coord)
        if existing is not None:
            return existing
        cell = ActiveCell(
            coord=coord,
            state=self.world.resolve(coord),
            bounds=cell_bounds(coord, origin=self.origin, tile_size=self.tile_size),
        )
        self._cells[coord] = cell
        self.renderer.on_cell_spawned(cell)
        return cell

    def reconcile_viewport(self, view_bounds: GeoBounds) -> None:
        self._view_rect = covering_rect(
            view_bounds,
            origin=self.origin,
            tile_size=self.tile_size,
            padding=self.viewport_padding,
        )
        for coord in self._view_rect.iter_coords():
            self.spawn(coord)
        self.prune()

    def reconcile_neighborhood(self, player_coord: GridCoord, radius: int) -> None:
        self._neighborhood_rect = neighborhood_rect(player_coord, radius)
        for coord in self._neighborhood_rect.iter_coords():
            self.spawn(coord)
        self.prune()

    def is_relevant(self, coord: GridCoord) -> bool:
        if self._view_rect is not None and self._view_rect.contains(coord):
            return True
        return self._neighborhood_rect is not None and self._neighborhood_rect.contains(coord)

    def prune(self) -> list[GridCoord]:
        stale = [coord for coord in self._cells if not self.is_relevant(coord)]
        for coord in stale:
            self._destroy(coord)
        return stale

    def refresh(self, coord: GridCoord) -> ActiveCell | None:
        cell = self._cells.get(coord)
        if cell is None:
            return None
        state = self.world.resolve(coord)
        if state != cell.state:
            cell.state = state
            self.renderer.on_cell_updated(cell)
        return cell

    def clear(self) -> None:
        for coord in list(self._cells):
            self._destroy(coord)
        self._view_rect = None
        self._neighborhood_rect = None

    def _destroy(self, coord: GridCoord) -> None:
        cell = self._cells.pop(coord)
        try:
            self.renderer.on_cell_destroyed(cell)
        except Exception:
            logger.exception("failed to tear down cell %s", coord.to_key())
