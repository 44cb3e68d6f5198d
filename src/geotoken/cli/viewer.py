from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence

from geotoken.content.io import JsonFileSaveStore, MemorySaveStore, SaveStore
from geotoken.sim.core import GameConfig, GameController, MovementFactory, Notification
from geotoken.sim.grid import GridCoord
from geotoken.sim.movement import KeyRepeatMovement, MovementSource, PositionFeed, PositionFeedMovement

DEFAULT_VIEW_RADIUS = 4
DEFAULT_SAVE_DIR = "saves"
MOVE_DIRECTIONS = {"w", "a", "s", "d"}


class AsciiViewer:
    """Read-only projection of the live cells around the player."""

    def __init__(self, radius: int = DEFAULT_VIEW_RADIUS) -> None:
        self.radius = radius

    def render(self, controller: GameController) -> str:
        player_cell = controller.state.player_cell
        cells = controller.state.cells
        lines = [controller.status_text(), f"cell=({player_cell.i},{player_cell.j}) active={len(cells)}"]

        j_values = range(player_cell.j - self.radius, player_cell.j + self.radius + 1)
        lines.append("      " + "".join(f"{j:>6}" for j in j_values))
        for i in range(player_cell.i + self.radius, player_cell.i - self.radius - 1, -1):
            row = []
            for j in j_values:
                coord = GridCoord(i, j)
                cell = cells.get(coord)
                if cell is None:
                    glyph = " "
                elif cell.token_value is None:
                    glyph = "."
                else:
                    glyph = str(cell.token_value)
                if coord == player_cell:
                    glyph = f"[{glyph}]"
                row.append(f"{glyph:>6}")
            lines.append(f"{i:>6}" + "".join(row))
        return "\n".join(lines)


class GameShell:
    """Line command adapter; issues events to the controller but does not own state."""

    def __init__(self, controller: GameController, feed: PositionFeed | None = None) -> None:
        self.controller = controller
        self.feed = feed
        self.viewer = AsciiViewer()

    def execute(self, raw: str) -> str:
        parts = raw.strip().split()
        if not parts:
            return ""
        command, args = parts[0].lower(), parts[1:]

        if command == "show":
            return self.viewer.render(self.controller)
        if command == "status":
            return self.controller.status_text()
        if command == "move" and args and args[0].lower() in MOVE_DIRECTIONS:
            steps = int(args[1]) if len(args) > 1 else 1
            return self._move(args[0].lower(), steps)
        if command == "fix" and len(args) == 2:
            return self._fix(float(args[0]), float(args[1]))
        if command in {"interact", "look"} and len(args) == 2:
            coord = GridCoord(int(args[0]), int(args[1]))
            if command == "look":
                cell = self.controller.state.cells.get(coord)
                return cell.describe() if cell is not None else f"Cell [{coord.i},{coord.j}] is not active."
            result = self.controller.interact(coord)
            return f"{result.outcome}: {self.controller.status_text()}"
        if command == "mode":
            source = self.controller.toggle_movement_mode()
            mode = "Geolocation" if self.controller.player.use_geolocation else "Keyboard"
            running = source is not None and source.running
            return f"Movement: {mode}" + ("" if running else " (inactive)")
        if command == "reset":
            self.controller.reset()
            return "game reset"
        if command == "save":
            self.controller.persist()
            return "saved"
        return "unknown command"

    def _move(self, key: str, steps: int) -> str:
        source = self.controller.movement
        if not isinstance(source, KeyRepeatMovement) or not source.running:
            return "keyboard movement inactive (switch with 'mode')"
        source.press(key)
        try:
            for _ in range(max(0, steps)):
                source.poll(source.interval)
        finally:
            source.release(key)
        return self.controller.status_text()

    def _fix(self, lat: float, lng: float) -> str:
        if self.feed is None or self.feed.watcher_count == 0:
            return "geolocation inactive (switch with 'mode')"
        self.feed.push(lat, lng)
        return self.controller.status_text()


def build_movement_factory(
    controller_ref: list[GameController],
    feed: PositionFeed | None,
    config: GameConfig,
) -> MovementFactory:
    def factory(use_geolocation: bool) -> MovementSource:
        if use_geolocation:
            return PositionFeedMovement(feed)
        return KeyRepeatMovement(lambda: controller_ref[0].player.position, step=config.tile_size)

    return factory


def build_shell(
    save_store: SaveStore,
    *,
    config: GameConfig | None = None,
    use_geolocation: bool = True,
    with_feed: bool = True,
) -> GameShell:
    config = config or GameConfig()
    feed = PositionFeed() if with_feed else None
    controller_ref: list[GameController] = []

    def notify(notification: Notification) -> None:
        print(f"! {notification.message}")

    controller = GameController.from_store(
        config,
        save_store,
        movement_factory=build_movement_factory(controller_ref, feed, config),
        notify=notify,
        use_geolocation=use_geolocation,
    )
    controller_ref.append(controller)
    controller.start()
    return GameShell(controller, feed=feed)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m geotoken.cli.viewer", description="Terminal geotoken session.")
    parser.add_argument("--save-dir", default=DEFAULT_SAVE_DIR, help="Directory holding the save file.")
    parser.add_argument("--no-save", action="store_true", help="Keep the session in memory only.")
    parser.add_argument("--manual", action="store_true", help="Start with keyboard movement instead of geolocation.")
    return parser


def run_demo(argv: Sequence[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    store: SaveStore = MemorySaveStore() if args.no_save else JsonFileSaveStore(args.save_dir)
    shell = build_shell(store, use_geolocation=not args.manual)

    print("geotoken demo. Commands: show | move <w|a|s|d> [n] | fix <lat> <lng> | look <i> <j> | interact <i> <j> | mode | reset | save | quit")
    print(shell.execute("show"))

    while True:
        raw = input("> ").strip()
        if raw in {"quit", "exit"}:
            break
        try:
            output = shell.execute(raw)
        except ValueError as exc:
            output = f"invalid input: {exc}"
        if output:
            print(output)

    shell.controller.shutdown()


if __name__ == "__main__":
    run_demo()
