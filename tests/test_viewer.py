from geotoken.cli.viewer import AsciiViewer, build_movement_factory, build_shell
from geotoken.content.io import SAVE_KEY, MemorySaveStore, deserialize
from geotoken.sim.core import GameConfig
from geotoken.sim.grid import GridCoord
from geotoken.sim.movement import KeyRepeatMovement, PositionFeed, PositionFeedMovement

CONFIG = GameConfig(spawn_probability=1.0, neighborhood_radius=4)


def test_ascii_viewer_marks_player_cell_and_tokens() -> None:
    shell = build_shell(MemorySaveStore(), config=CONFIG, use_geolocation=False)
    shell.controller.interact(GridCoord(0, 0))

    rendered = AsciiViewer(radius=1).render(shell.controller)
    lines = rendered.splitlines()

    assert lines[0] == shell.controller.status_text()
    assert lines[1] == f"cell=(0,0) active={len(shell.controller.state.cells)}"
    assert lines[2].split() == ["-1", "0", "1"]
    assert lines[3].split() == ["1", "1", "1", "1"]
    assert lines[4].split() == ["0", "1", "[.]", "1"]


def test_shell_keyboard_moves_are_relative_steps() -> None:
    store = MemorySaveStore()
    shell = build_shell(store, config=CONFIG, use_geolocation=False)
    writes_before = store.write_count

    output = shell.execute("move w 3")

    assert output.startswith("Holding: none - Player: 36.998237,")
    assert store.write_count == writes_before
    assert shell.execute("fix 1 2") == "geolocation inactive (switch with 'mode')"


def test_shell_mode_switches_to_geolocation_fixes() -> None:
    store = MemorySaveStore()
    shell = build_shell(store, config=CONFIG, use_geolocation=False)

    assert shell.execute("mode") == "Movement: Geolocation"
    assert shell.execute("move d") == "keyboard movement inactive (switch with 'mode')"
    output = shell.execute("fix 37.0005 -122.0565")

    assert output == "Holding: none - Player: 37.000500, -122.056500"
    player, _ = deserialize(store.read(SAVE_KEY))
    assert (player.lat, player.lng, player.use_geolocation) == (37.0005, -122.0565, True)


def test_shell_without_feed_reports_inactive_geolocation(capsys) -> None:
    shell = build_shell(MemorySaveStore(), config=CONFIG, use_geolocation=True, with_feed=False)

    assert "! Geolocation not supported." in capsys.readouterr().out
    assert shell.execute("mode") == "Movement: Keyboard"
    assert shell.execute("mode") == "Movement: Geolocation (inactive)"


def test_shell_interact_look_and_reset() -> None:
    store = MemorySaveStore()
    shell = build_shell(store, config=CONFIG, use_geolocation=False)

    assert shell.execute("look 1 1") == "Cell [1,1] has token value 1."
    assert shell.execute("interact 0 0").startswith("pickup: Holding: 1")
    assert shell.execute("interact 1 1").startswith("merge: Holding: none")
    assert shell.execute("look 1 1") == "Cell [1,1] has token value 2."
    assert shell.execute("look 90 90") == "Cell [90,90] is not active."
    assert shell.execute("interact 4 4").startswith("too_far:")
    assert shell.execute("interact 9 9").startswith("inactive:")

    assert shell.execute("reset") == "game reset"
    assert store.read(SAVE_KEY) is None
    assert shell.execute("look 1 1") == "Cell [1,1] has token value 1."


def test_shell_save_and_unknown_commands() -> None:
    store = MemorySaveStore()
    shell = build_shell(store, config=CONFIG, use_geolocation=False)
    store.delete(SAVE_KEY)

    assert shell.execute("save") == "saved"
    assert store.read(SAVE_KEY) is not None
    assert shell.execute("dance") == "unknown command"
    assert shell.execute("   ") == ""


def test_movement_factory_builds_source_per_mode() -> None:
    feed = PositionFeed()
    factory = build_movement_factory([], feed, CONFIG)

    geolocation = factory(True)
    keyboard = factory(False)

    assert isinstance(geolocation, PositionFeedMovement)
    assert geolocation.feed is feed
    assert isinstance(keyboard, KeyRepeatMovement)
    assert keyboard.step == CONFIG.tile_size
