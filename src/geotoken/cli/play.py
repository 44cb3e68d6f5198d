from __future__ import annotations

import argparse
import logging
from typing import Sequence

from geotoken.cli.pygame_viewer import run_pygame_viewer
from geotoken.content.io import SAVE_KEY, JsonFileSaveStore

DEFAULT_SAVE_DIR = "saves"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python play.py", description="geotoken launcher.")
    parser.add_argument("--save-dir", default=DEFAULT_SAVE_DIR, help="Directory holding the save file.")
    parser.add_argument("--geolocation", action="store_true", help="Start a fresh game in geolocation mode.")
    parser.add_argument("--new-game", action="store_true", help="Discard any existing save before starting.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    if args.new_game:
        JsonFileSaveStore(args.save_dir).delete(SAVE_KEY)
    return run_pygame_viewer(
        save_dir=args.save_dir,
        headless=args.headless,
        use_geolocation=args.geolocation,
    )


if __name__ == "__main__":
    raise SystemExit(main())
