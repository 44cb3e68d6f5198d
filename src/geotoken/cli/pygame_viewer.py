from __future__ import annotations

import argparse
import importlib.metadata
import logging
import math
import os
import platform
import sys
from dataclasses import dataclass, field
from typing import Any

from geotoken.content.io import JsonFileSaveStore, SaveStore
from geotoken.sim.cells import ActiveCell, CellRenderer
from geotoken.sim.core import GameConfig, GameController, Notification
from geotoken.sim.grid import GeoBounds, GridCoord, LatLng
from geotoken.sim.hash import overrides_hash
from geotoken.sim.movement import KeyRepeatMovement, MovementSource, PositionFeedMovement

WINDOW_SIZE = (960, 720)
HUD_HEIGHT = 84
TILE_PIXELS = 28
PAN_TILES_PER_SECOND = 12.0
RESET_CONFIRM_SECONDS = 2.0
DEFAULT_SAVE_DIR = "saves"

EMPTY_CELL_COLOR = (44, 48, 58)
TOKEN_CELL_COLOR = (214, 170, 72)
GRID_LINE_COLOR = (24, 26, 32)
REACH_OUTLINE_COLOR = (120, 200, 255)
PLAYER_COLOR = (255, 243, 130)

pygame: Any | None = None

logger = logging.getLogger(__name__)


@dataclass
class MapView:
    """Pixel window onto the lat/lng plane; north is up."""

    center: LatLng
    tile_size: float
    width: int = WINDOW_SIZE[0]
    height: int = WINDOW_SIZE[1] - HUD_HEIGHT
    top: int = HUD_HEIGHT
    tile_pixels: int = TILE_PIXELS

    @property
    def degrees_per_pixel(self) -> float:
        return self.tile_size / self.tile_pixels

    def bounds(self) -> GeoBounds:
        half_lat = (self.height / 2.0) * self.degrees_per_pixel
        half_lng = (self.width / 2.0) * self.degrees_per_pixel
        return GeoBounds(
            south_west=LatLng(self.center.lat - half_lat, self.center.lng - half_lng),
            north_east=LatLng(self.center.lat + half_lat, self.center.lng + half_lng),
        )

    def to_pixel(self, point: LatLng) -> tuple[float, float]:
        x = self.width / 2.0 + (point.lng - self.center.lng) / self.degrees_per_pixel
        y = self.top + self.height / 2.0 - (point.lat - self.center.lat) / self.degrees_per_pixel
        return (x, y)

    def to_latlng(self, pixel_x: float, pixel_y: float) -> LatLng:
        lng = self.center.lng + (pixel_x - self.width / 2.0) * self.degrees_per_pixel
        lat = self.center.lat - (pixel_y - self.top - self.height / 2.0) * self.degrees_per_pixel
        return LatLng(lat, lng)

    def pan(self, d_lat_tiles: float, d_lng_tiles: float) -> None:
        self.center = LatLng(
            self.center.lat + d_lat_tiles * self.tile_size,
            self.center.lng + d_lng_tiles * self.tile_size,
        )

    def cell_rect(self, cell: ActiveCell) -> tuple[int, int, int, int]:
        left, top = self.to_pixel(LatLng(cell.bounds.north_east.lat, cell.bounds.south_west.lng))
        right, bottom = self.to_pixel(LatLng(cell.bounds.south_west.lat, cell.bounds.north_east.lng))
        return (math.floor(left), math.floor(top), math.ceil(right - left), math.ceil(bottom - top))


@dataclass
class PygameCellRenderer(CellRenderer):
    """Keeps one label per live cell; surfaces are built lazily at draw time."""

    labels: dict[GridCoord, str] = field(default_factory=dict)
    _surfaces: dict[GridCoord, Any] = field(default_factory=dict, repr=False)

    def on_cell_spawned(self, cell: ActiveCell) -> None:
        self.labels[cell.coord] = _cell_label(cell)

    def on_cell_updated(self, cell: ActiveCell) -> None:
        self.labels[cell.coord] = _cell_label(cell)
        self._surfaces.pop(cell.coord, None)

    def on_cell_destroyed(self, cell: ActiveCell) -> None:
        del self.labels[cell.coord]
        self._surfaces.pop(cell.coord, None)

    def surface_for(self, coord: GridCoord, font: Any) -> Any | None:
        label = self.labels.get(coord)
        if not label:
            return None
        surface = self._surfaces.get(coord)
        if surface is None:
            surface = font.render(label, True, (20, 20, 24))
            self._surfaces[coord] = surface
        return surface


def _cell_label(cell: ActiveCell) -> str:
    return "" if cell.token_value is None else str(cell.token_value)


@dataclass
class ViewerSession:
    """Viewer-side state that is not part of the game: view, follow flag, status line."""

    controller: GameController
    view: MapView
    follow_player: bool = False
    status_message: str | None = None
    reset_armed_for: float = 0.0

    def settle_view(self) -> None:
        self.controller.handle_view_settled(self.view.bounds())

    def recenter(self) -> None:
        self.view.center = self.controller.player.position
        self.settle_view()

    def toggle_follow(self) -> None:
        self.follow_player = not self.follow_player
        self.status_message = f"Follow Player: {'ON' if self.follow_player else 'OFF'}"
        if self.follow_player:
            self.recenter()

    def toggle_mode(self) -> None:
        source = self.controller.toggle_movement_mode()
        mode = "Geolocation" if self.controller.player.use_geolocation else "Keyboard"
        if source is not None and source.running:
            self.status_message = f"Movement: {mode}"

    def request_reset(self, now: float) -> None:
        if now <= self.reset_armed_for:
            self.controller.reset()
            self.reset_armed_for = 0.0
            self.status_message = "game reset"
            self.recenter()
            return
        self.reset_armed_for = now + RESET_CONFIRM_SECONDS
        self.status_message = "press R again to reset the game"

    def click(self, pixel_x: int, pixel_y: int) -> None:
        if pixel_y < self.view.top:
            return
        point = self.view.to_latlng(pixel_x, pixel_y)
        coord = self.controller.config.to_cell(point.lat, point.lng)
        result = self.controller.interact(coord)
        if result.changed and not result.goal_reached:
            self.status_message = self.controller.status_text()

    def describe(self, pixel_x: int, pixel_y: int) -> None:
        point = self.view.to_latlng(pixel_x, pixel_y)
        coord = self.controller.config.to_cell(point.lat, point.lng)
        cell = self.controller.state.cells.get(coord)
        self.status_message = cell.describe() if cell is not None else None

    def on_notification(self, notification: Notification) -> None:
        self.status_message = notification.message

    def after_move(self) -> None:
        if self.follow_player:
            self.recenter()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m geotoken.cli.pygame_viewer",
        description="Run the geotoken pygame map viewer.",
    )
    parser.add_argument("--save-dir", default=DEFAULT_SAVE_DIR, help="Directory holding the save file.")
    parser.add_argument(
        "--geolocation",
        action="store_true",
        help="Start a fresh game with geolocation movement instead of the keyboard.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[geotoken.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def build_viewer_session(
    save_store: SaveStore,
    *,
    config: GameConfig | None = None,
    use_geolocation: bool = False,
) -> ViewerSession:
    config = config or GameConfig()
    session_ref: list[ViewerSession] = []
    renderer = PygameCellRenderer()

    def movement_factory(geolocation: bool) -> MovementSource:
        if geolocation:
            # Desktop hosts have no positioning service to subscribe to.
            return PositionFeedMovement(None)
        return KeyRepeatMovement(lambda: session_ref[0].controller.player.position, step=config.tile_size)

    def notify(notification: Notification) -> None:
        if session_ref:
            session_ref[0].on_notification(notification)

    controller = GameController.from_store(
        config,
        save_store,
        movement_factory=movement_factory,
        renderer=renderer,
        notify=notify,
        use_geolocation=use_geolocation,
    )
    session = ViewerSession(controller=controller, view=MapView(center=controller.player.position, tile_size=config.tile_size))
    session_ref.append(session)
    controller.start()
    session.settle_view()
    print(
        "[geotoken.viewer] session ready "
        f"overrides={len(controller.state.world.overrides)} "
        f"overrides_hash={overrides_hash(controller.state.world.overrides)} "
        f"active_cells={len(controller.state.cells)}"
    )
    return session


def _draw(screen: Any, session: ViewerSession, font: Any, hud_font: Any) -> None:
    controller = session.controller
    renderer = controller.state.cells.renderer
    view = session.view
    view_bounds = view.bounds()
    player_cell = controller.state.player_cell
    reach = controller.config.interaction_radius

    screen.fill(GRID_LINE_COLOR)
    view_rect = controller.state.cells.view_rect
    visible = view_rect.iter_coords() if view_rect is not None else iter(())
    for coord in visible:
        cell = controller.state.cells.get(coord)
        if cell is None or not cell.bounds.intersects(view_bounds):
            continue
        rect = pygame.Rect(*view.cell_rect(cell))
        color = EMPTY_CELL_COLOR if cell.token_value is None else TOKEN_CELL_COLOR
        pygame.draw.rect(screen, color, rect)
        pygame.draw.rect(screen, GRID_LINE_COLOR, rect, 1)
        if isinstance(renderer, PygameCellRenderer):
            label = renderer.surface_for(cell.coord, font)
            if label is not None:
                screen.blit(label, label.get_rect(center=rect.center))

    reach_cells = [
        controller.state.cells.get(GridCoord(player_cell.i + di, player_cell.j + dj))
        for di in (-reach, reach)
        for dj in (-reach, reach)
    ]
    corners = [cell for cell in reach_cells if cell is not None]
    if len(corners) == 4:
        rects = [pygame.Rect(*view.cell_rect(cell)) for cell in corners]
        outline = rects[0].unionall(rects[1:])
        pygame.draw.rect(screen, REACH_OUTLINE_COLOR, outline, 2)

    player_x, player_y = view.to_pixel(controller.player.position)
    pygame.draw.circle(screen, PLAYER_COLOR, (int(player_x), int(player_y)), 8)
    pygame.draw.circle(screen, (15, 15, 15), (int(player_x), int(player_y)), 8, 1)

    pygame.draw.rect(screen, (17, 18, 25), pygame.Rect(0, 0, WINDOW_SIZE[0], HUD_HEIGHT))
    mode = "Geolocation" if controller.player.use_geolocation else "Keyboard"
    lines = [
        controller.status_text(),
        f"Movement: {mode} | Follow Player: {'ON' if session.follow_player else 'OFF'}",
        "WASD move | arrows pan | LMB interact | RMB inspect | SPACE center | F follow | M mode | R reset | ESC quit",
    ]
    if session.status_message:
        lines[1] += f" | {session.status_message}"
    y = 8
    for line in lines:
        surface = hud_font.render(line, True, (240, 240, 240))
        screen.blit(surface, (12, y))
        y += 24


def run_pygame_viewer(
    *,
    save_dir: str = DEFAULT_SAVE_DIR,
    headless: bool = False,
    use_geolocation: bool = False,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[geotoken.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[geotoken.viewer] failed during pygame.init(): "
            f"{exc}. Hint: verify a working SDL video driver (set SDL_VIDEODRIVER=dummy for headless mode).",
            file=sys.stderr,
        )
        return 1

    session = build_viewer_session(JsonFileSaveStore(save_dir), use_geolocation=use_geolocation)
    controller = session.controller

    try:
        pygame_module.display.set_caption("geotoken")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[geotoken.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: GUI sessions require a valid display; use --headless or GEOTOKEN_HEADLESS=1.",
            file=sys.stderr,
        )
        controller.shutdown()
        pygame_module.quit()
        return 1

    if headless:
        controller.shutdown()
        pygame_module.quit()
        return 0

    clock = pygame_module.time.Clock()
    font = pygame_module.font.SysFont("consolas", 14, bold=True)
    hud_font = pygame_module.font.SysFont("consolas", 18)
    movement_keys = {
        pygame_module.K_w: "w",
        pygame_module.K_a: "a",
        pygame_module.K_s: "s",
        pygame_module.K_d: "d",
    }
    pan_keys = {
        pygame_module.K_UP: (1.0, 0.0),
        pygame_module.K_DOWN: (-1.0, 0.0),
        pygame_module.K_LEFT: (0.0, -1.0),
        pygame_module.K_RIGHT: (0.0, 1.0),
    }
    panning: set[int] = set()

    running = True
    while running:
        dt = clock.tick(60) / 1000.0
        now = pygame_module.time.get_ticks() / 1000.0

        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.KEYDOWN:
                if event.key == pygame_module.K_ESCAPE:
                    running = False
                elif event.key in movement_keys and isinstance(controller.movement, KeyRepeatMovement):
                    controller.movement.press(movement_keys[event.key])
                elif event.key in pan_keys:
                    panning.add(event.key)
                elif event.key == pygame_module.K_SPACE:
                    session.recenter()
                elif event.key == pygame_module.K_f:
                    session.toggle_follow()
                elif event.key == pygame_module.K_m:
                    session.toggle_mode()
                elif event.key == pygame_module.K_r:
                    session.request_reset(now)
            elif event.type == pygame_module.KEYUP:
                if event.key in movement_keys and isinstance(controller.movement, KeyRepeatMovement):
                    controller.movement.release(movement_keys[event.key])
                elif event.key in panning:
                    panning.discard(event.key)
                    if not panning:
                        session.settle_view()
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button == 1:
                session.click(*event.pos)
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button == 3:
                session.describe(*event.pos)

        for key in panning:
            d_lat, d_lng = pan_keys[key]
            session.view.pan(d_lat * PAN_TILES_PER_SECOND * dt, d_lng * PAN_TILES_PER_SECOND * dt)

        if isinstance(controller.movement, KeyRepeatMovement) and controller.movement.poll(dt):
            session.after_move()

        _draw(screen, session, font, hud_font)
        pygame_module.display.flip()

    controller.shutdown()
    print(f"[geotoken.viewer] saved overrides_hash={overrides_hash(controller.state.world.overrides)}")
    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    headless = args.headless or _env_flag_enabled("GEOTOKEN_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            save_dir=args.save_dir,
            headless=headless,
            use_geolocation=args.geolocation,
        )
    )


if __name__ == "__main__":
    main()
